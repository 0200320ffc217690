"""On-chain funding-rate publisher contract.

Publishing is idempotent at the account level: the first publish for a
symbol creates its account, later publishes overwrite the stored rate in
place. Chain failures come back as OnChainPublishResult(success=False) and
are retried by the next scheduled tick, never in a loop here.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from rwa_oracle.chain.client import ChainClient
from rwa_oracle.exceptions import ChainError, PublishFailed
from rwa_oracle.logging import get_logger
from rwa_oracle.models import (
    BlockchainProviderType,
    FundingRate,
    OnChainFundingRate,
    OnChainPublishResult,
    utcnow,
)

logger = get_logger(__name__)


class FundingRatePublisher(ABC):
    """Writes and reads funding rates on one chain."""

    def __init__(
        self,
        client: ChainClient,
        provider_type: BlockchainProviderType,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._client = client
        self._provider_type = provider_type
        self._clock = clock

    @property
    def provider_type(self) -> BlockchainProviderType:
        return self._provider_type

    @property
    def client(self) -> ChainClient:
        return self._client

    # ---- chain-specific ----

    @abstractmethod
    def get_account_address(self, symbol: str) -> str:
        """Deterministic account/slot address for a symbol."""
        ...

    @abstractmethod
    def encode(self, rate: FundingRate) -> dict[str, Any]:
        """Chain representation of a funding rate."""
        ...

    @abstractmethod
    def decode(self, symbol: str, address: str, data: dict[str, Any]) -> OnChainFundingRate:
        """Inverse of encode."""
        ...

    # ---- account lifecycle ----

    async def is_account_initialized(self, symbol: str) -> bool:
        return await self._client.get_account(self.get_account_address(symbol)) is not None

    async def initialize_account(self, symbol: str) -> OnChainPublishResult:
        """Create the symbol's account if absent. Succeeds without a tx if it exists."""
        address = self.get_account_address(symbol)
        try:
            tx_hash = await self._ensure_account(symbol, address)
        except ChainError as e:
            return self._failure(symbol, address, e)
        return OnChainPublishResult(
            success=True,
            provider_type=self._provider_type,
            published_at=self._clock(),
            transaction_hash=tx_hash,
            account_address=address,
        )

    async def _ensure_account(self, symbol: str, address: str) -> str | None:
        if await self._client.get_account(address) is not None:
            return None
        try:
            tx_hash = await self._client.create_account(
                address, {"symbol": symbol.upper(), "initialized": True}
            )
        except ChainError:
            # A concurrent publish may have created it first
            if await self._client.get_account(address) is not None:
                return None
            raise
        logger.info(
            "chain_account_initialized",
            provider=self._provider_type.value,
            symbol=symbol,
            address=address,
        )
        return tx_hash

    # ---- publish / read ----

    async def publish_funding_rate(self, symbol: str, rate: FundingRate) -> OnChainPublishResult:
        address = self.get_account_address(symbol)
        try:
            await self._ensure_account(symbol, address)
            tx_hash = await self._client.write_account(address, self.encode(rate))
            confirmations = await self._client.get_confirmations(tx_hash)
        except ChainError as e:
            return self._failure(symbol, address, e)

        logger.info(
            "funding_rate_published",
            provider=self._provider_type.value,
            symbol=symbol,
            rate=str(rate.rate),
            tx_hash=tx_hash,
        )
        return OnChainPublishResult(
            success=True,
            provider_type=self._provider_type,
            published_at=self._clock(),
            transaction_hash=tx_hash,
            account_address=address,
            confirmations=confirmations,
        )

    async def publish_batch(self, rates: dict[str, FundingRate]) -> dict[str, OnChainPublishResult]:
        symbols = list(rates)
        results = await asyncio.gather(
            *(self.publish_funding_rate(s, rates[s]) for s in symbols)
        )
        return dict(zip(symbols, results))

    async def read_funding_rate(self, symbol: str) -> OnChainFundingRate | None:
        """Stored rate, or None if the account is missing or was never written."""
        address = self.get_account_address(symbol)
        data = await self._client.get_account(address)
        if not data or "rate" not in data:
            return None
        return self.decode(symbol.upper(), address, data)

    async def read_batch(self, symbols: list[str]) -> dict[str, OnChainFundingRate | None]:
        results = await asyncio.gather(*(self.read_funding_rate(s) for s in symbols))
        return dict(zip(symbols, results))

    def _failure(self, symbol: str, address: str, error: ChainError) -> OnChainPublishResult:
        failure = PublishFailed(f"{self._provider_type.value}/{symbol}: {error}")
        logger.warning(
            "publish_failed",
            provider=self._provider_type.value,
            symbol=symbol,
            error=str(failure),
        )
        return OnChainPublishResult(
            success=False,
            provider_type=self._provider_type,
            published_at=self._clock(),
            account_address=address,
            error_message=str(failure),
        )
