"""Abstract market-data provider interface.

Defines the contract every external price / corporate-action vendor
implements. The aggregator and the corporate-action registry depend only
on this interface; vendor URL shapes and payload parsing stay in the
concrete clients.

Failures are raised as typed ProviderError subclasses:
RateLimited, SourceUnavailable, SymbolNotFound.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal

from rwa_oracle.logging import get_logger
from rwa_oracle.models import CorporateAction, ProviderQuote

logger = get_logger(__name__)


class MarketDataProvider(ABC):
    """Abstract base class for external equity data vendors."""

    name: str = "provider"

    def __init__(self, reliability: Decimal) -> None:
        self._reliability = reliability

    @property
    def reliability(self) -> Decimal:
        """Fixed vendor reliability weight in [0, 1]."""
        return self._reliability

    @abstractmethod
    async def connect(self) -> None:
        """Open network resources."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        ...

    @abstractmethod
    async def fetch_price(self, symbol: str) -> ProviderQuote:
        """Latest price for a symbol."""
        ...

    @abstractmethod
    async def fetch_price_at_date(self, symbol: str, day: date) -> ProviderQuote:
        """Closing price for a symbol on a given trading day."""
        ...

    @abstractmethod
    async def fetch_splits(self, symbol: str) -> list[CorporateAction]:
        """Historical and declared splits."""
        ...

    @abstractmethod
    async def fetch_dividends(self, symbol: str) -> list[CorporateAction]:
        """Historical and declared cash dividends."""
        ...

    async def fetch_all(self, symbol: str, from_date: date | None = None) -> list[CorporateAction]:
        """Splits and dividends with effective_date >= from_date.

        One failing half is tolerated and logged. Raises the first error only
        if both fail.
        """
        results = await asyncio.gather(
            self.fetch_splits(symbol),
            self.fetch_dividends(symbol),
            return_exceptions=True,
        )
        actions: list[CorporateAction] = []
        errors: list[BaseException] = []
        for kind, result in zip(("splits", "dividends"), results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "source_unavailable",
                    provider=self.name,
                    symbol=symbol,
                    endpoint=kind,
                    reason=type(result).__name__,
                    error=str(result),
                )
                errors.append(result)
            else:
                actions.extend(result)

        if errors and len(errors) == len(results):
            raise errors[0]

        if from_date is not None:
            actions = [a for a in actions if a.effective_date >= from_date]
        return sorted(actions, key=lambda a: a.effective_date)
