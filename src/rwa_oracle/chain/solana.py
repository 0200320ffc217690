"""Solana funding-rate publisher.

Each symbol lives in a program-derived account. All values are fixed-point
integers: the annualized rate (a percent) with 4 decimals, the hourly rate
and prices (mark, spot and premium) with 8 decimals.
"""

import hashlib
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import base58

from rwa_oracle.chain.client import ChainClient
from rwa_oracle.chain.publisher import FundingRatePublisher
from rwa_oracle.models import (
    BlockchainProviderType,
    FundingRate,
    OnChainFundingRate,
    utcnow,
)

RATE_SCALE = Decimal("10000")
HOURLY_RATE_SCALE = Decimal("100000000")
PRICE_SCALE = Decimal("100000000")

_SEED = b"funding_rate"


def _to_fixed(value: Decimal, scale: Decimal) -> int:
    return int((value * scale).to_integral_value())


def _from_fixed(value: int, scale: Decimal) -> Decimal:
    return Decimal(value) / scale


class SolanaFundingPublisher(FundingRatePublisher):
    """Publishes funding rates to a Solana oracle program."""

    def __init__(
        self,
        client: ChainClient,
        program_id: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(client, BlockchainProviderType.SOLANA, clock)
        self._program_id = program_id

    def get_account_address(self, symbol: str) -> str:
        digest = hashlib.sha256(
            _SEED + symbol.upper().encode() + self._program_id.encode()
        ).digest()
        return base58.b58encode(digest).decode()

    def encode(self, rate: FundingRate) -> dict[str, Any]:
        return {
            "symbol": rate.symbol.upper(),
            "rate": _to_fixed(rate.rate, RATE_SCALE),
            "hourly_rate": _to_fixed(rate.hourly_rate, HOURLY_RATE_SCALE),
            "mark_price": _to_fixed(rate.mark_price, PRICE_SCALE),
            "spot_price": _to_fixed(rate.adjusted_spot_price, PRICE_SCALE),
            "premium": _to_fixed(rate.premium, PRICE_SCALE),
            "last_updated": int(rate.calculated_at.timestamp()),
            "valid_until": int(rate.valid_until.timestamp()),
        }

    def decode(self, symbol: str, address: str, data: dict[str, Any]) -> OnChainFundingRate:
        return OnChainFundingRate(
            symbol=symbol,
            provider_type=self.provider_type,
            rate=_from_fixed(data["rate"], RATE_SCALE),
            hourly_rate=_from_fixed(data["hourly_rate"], HOURLY_RATE_SCALE),
            mark_price=_from_fixed(data["mark_price"], PRICE_SCALE),
            spot_price=_from_fixed(data["spot_price"], PRICE_SCALE),
            premium=_from_fixed(data["premium"], PRICE_SCALE),
            last_updated=datetime.fromtimestamp(data["last_updated"], tz=timezone.utc),
            valid_until=datetime.fromtimestamp(data["valid_until"], tz=timezone.utc),
            account_address=address,
        )
