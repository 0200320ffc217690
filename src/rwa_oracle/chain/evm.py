"""EVM funding-rate publisher.

One contract per chain keeps a mapping of symbol to rate record. Values are
stored as 18-decimal fixed-point integers, the usual EVM convention.
"""

import hashlib
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from rwa_oracle.chain.client import ChainClient
from rwa_oracle.chain.publisher import FundingRatePublisher
from rwa_oracle.models import (
    BlockchainProviderType,
    FundingRate,
    OnChainFundingRate,
    utcnow,
)

WAD = Decimal(10) ** 18

_FIELDS = ("rate", "hourly_rate", "mark_price", "spot_price", "premium")


class EvmFundingPublisher(FundingRatePublisher):
    """Publishes funding rates to an oracle contract on an EVM chain."""

    def __init__(
        self,
        client: ChainClient,
        provider_type: BlockchainProviderType,
        contract_address: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if provider_type == BlockchainProviderType.SOLANA:
            raise ValueError("Solana is not an EVM chain")
        super().__init__(client, provider_type, clock)
        self._contract_address = contract_address.lower()

    def get_account_address(self, symbol: str) -> str:
        """Storage slot key for the symbol within the contract mapping."""
        digest = hashlib.sha256(
            self._contract_address.encode() + symbol.upper().encode()
        ).hexdigest()
        return f"0x{digest}"

    def encode(self, rate: FundingRate) -> dict[str, Any]:
        values = {
            "rate": rate.rate,
            "hourly_rate": rate.hourly_rate,
            "mark_price": rate.mark_price,
            "spot_price": rate.adjusted_spot_price,
            "premium": rate.premium,
        }
        data: dict[str, Any] = {
            name: int((value * WAD).to_integral_value()) for name, value in values.items()
        }
        data["symbol"] = rate.symbol.upper()
        data["last_updated"] = int(rate.calculated_at.timestamp())
        data["valid_until"] = int(rate.valid_until.timestamp())
        return data

    def decode(self, symbol: str, address: str, data: dict[str, Any]) -> OnChainFundingRate:
        values = {name: Decimal(data[name]) / WAD for name in _FIELDS}
        return OnChainFundingRate(
            symbol=symbol,
            provider_type=self.provider_type,
            last_updated=datetime.fromtimestamp(data["last_updated"], tz=timezone.utc),
            valid_until=datetime.fromtimestamp(data["valid_until"], tz=timezone.utc),
            account_address=address,
            **values,
        )
