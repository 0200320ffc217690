"""Mark price sources for the funding-rate premium.

The synthetic source uses the adjusted consensus spot (zero premium by
construction). The ccxt source reads the perpetual's mark price from a
derivatives venue listing tokenized-equity perps.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

import ccxt.async_support as ccxt_async

from rwa_oracle.config import MarkPriceSettings
from rwa_oracle.exceptions import ConfigurationError, NoDataAvailable, RateLimited, SourceUnavailable
from rwa_oracle.logging import get_logger
from rwa_oracle.market_data.price_service import EquityPriceService

logger = get_logger(__name__)


class MarkPriceSource(ABC):
    """Abstract provider of perpetual mark prices."""

    async def connect(self) -> None:
        """Initialize connections (no-op by default)."""

    async def close(self) -> None:
        """Release connections (no-op by default)."""

    @abstractmethod
    async def get_mark_price(self, symbol: str) -> Decimal:
        """Current mark price. Raises NoDataAvailable or a ProviderError."""
        ...


class SyntheticMarkPriceSource(MarkPriceSource):
    """Mark equals the adjusted consensus spot."""

    def __init__(self, price_service: EquityPriceService) -> None:
        self._price_service = price_service

    async def get_mark_price(self, symbol: str) -> Decimal:
        result = await self._price_service.get_adjusted_price(symbol)
        if not result.ok or result.value is None:
            raise NoDataAvailable(result.message or f"{symbol}: no spot for synthetic mark")
        return result.value.adjusted_price


class CcxtMarkPriceSource(MarkPriceSource):
    """Reads perpetual mark prices through ccxt async."""

    name = "ccxt"

    def __init__(self, settings: MarkPriceSettings) -> None:
        exchange_cls = getattr(ccxt_async, settings.exchange_id, None)
        if exchange_cls is None:
            raise ConfigurationError(f"unknown ccxt exchange: {settings.exchange_id}")
        self._settings = settings
        self._exchange = exchange_cls({"enableRateLimit": True, "options": {"defaultType": "swap"}})

    async def connect(self) -> None:
        logger.info("connecting_mark_price_exchange", exchange=self._settings.exchange_id)
        await self._exchange.load_markets()

    async def close(self) -> None:
        await self._exchange.close()
        logger.info("mark_price_exchange_closed", exchange=self._settings.exchange_id)

    async def get_mark_price(self, symbol: str) -> Decimal:
        market = self._settings.symbol_template.format(symbol=symbol.upper())
        try:
            ticker = await self._exchange.fetch_ticker(market)
        except ccxt_async.RateLimitExceeded as e:
            raise RateLimited(self.name, str(e)) from e
        except ccxt_async.BadSymbol as e:
            raise NoDataAvailable(f"{market}: not listed") from e
        except ccxt_async.BaseError as e:
            raise SourceUnavailable(self.name, str(e)) from e

        raw = ticker.get("markPrice") or ticker.get("info", {}).get("markPrice") or ticker.get("last")
        if raw is None:
            raise NoDataAvailable(f"{market}: ticker has no mark or last price")
        return Decimal(str(raw))
