"""Equity price service: cached aggregation plus corporate-action adjustment.

Public methods return Result values. Data failures (no sources, merger
discontinuity) never raise.
"""

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone

from rwa_oracle.config import PriceSettings
from rwa_oracle.corporate_actions.adjustment import PriceAdjuster
from rwa_oracle.data.price_store import PriceStore
from rwa_oracle.exceptions import CorporateActionDiscontinuity, NoDataAvailable
from rwa_oracle.logging import get_logger
from rwa_oracle.market_data.aggregator import PriceAggregator
from rwa_oracle.market_data.cache import TTLCache
from rwa_oracle.models import (
    EquityPrice,
    FailureKind,
    Result,
    failure_from_exception,
    utcnow,
)

logger = get_logger(__name__)


class EquityPriceService:
    """Raw and adjusted equity prices for tracked symbols.

    Args:
        aggregator: Multi-provider consensus.
        adjuster: Corporate-action adjustment.
        price_store: Raw observation history.
        settings: Cache TTLs and stale-fallback multiplier.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        aggregator: PriceAggregator,
        adjuster: PriceAdjuster,
        price_store: PriceStore,
        settings: PriceSettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._aggregator = aggregator
        self._adjuster = adjuster
        self._store = price_store
        self._settings = settings
        self._clock = clock
        self._latest: TTLCache[EquityPrice] = TTLCache(settings.cache_ttl_seconds)
        self._historical: TTLCache[EquityPrice] = TTLCache(settings.history_cache_ttl_seconds)

    async def get_raw_price(self, symbol: str) -> Result[EquityPrice]:
        try:
            return Result.success(await self._latest_raw(symbol.upper()))
        except NoDataAvailable as e:
            return failure_from_exception(e)

    async def get_adjusted_price(
        self, symbol: str, acknowledge_discontinuity: bool = False
    ) -> Result[EquityPrice]:
        try:
            raw = await self._latest_raw(symbol.upper())
            return Result.success(await self._adjust(raw, acknowledge_discontinuity))
        except (NoDataAvailable, CorporateActionDiscontinuity) as e:
            return failure_from_exception(e)

    async def get_batch_prices(
        self, symbols: list[str], adjusted: bool = True
    ) -> dict[str, Result[EquityPrice]]:
        """Per-symbol results; one symbol failing never fails the batch."""
        fetch = self.get_adjusted_price if adjusted else self.get_raw_price
        results = await asyncio.gather(*(fetch(s) for s in symbols))
        return dict(zip(symbols, results))

    async def get_price_history(
        self, symbol: str, start: datetime, end: datetime
    ) -> Result[list[EquityPrice]]:
        """Stored observations in [start, end], each adjusted to today's basis."""
        symbol = symbol.upper()
        rows = await self._store.get_range(symbol, start, end)
        if not rows:
            return Result.fail(FailureKind.NO_DATA, f"{symbol}: no price history in range")
        try:
            return Result.success([await self._adjust(row) for row in rows])
        except CorporateActionDiscontinuity as e:
            return failure_from_exception(e)

    async def get_price_at_date(self, symbol: str, day: date) -> Result[EquityPrice]:
        """Price on a given day: stored observation first, providers second."""
        symbol = symbol.upper()
        try:
            raw = await self._historical.get_or_load(
                (symbol, day), lambda: self._load_at_date(symbol, day)
            )
            return Result.success(await self._adjust(raw))
        except (NoDataAvailable, CorporateActionDiscontinuity) as e:
            return failure_from_exception(e)

    # ---- internals ----

    async def _latest_raw(self, symbol: str) -> EquityPrice:
        cached = self._latest.get(symbol)
        if cached is not None:
            return cached

        try:
            price = await self._aggregator.aggregate(symbol)
        except NoDataAvailable:
            stored = await self._store.get_latest(symbol)
            if stored is None:
                raise
            logger.warning(
                "serving_stale_price",
                symbol=symbol,
                price_date=stored.price_date.isoformat(),
            )
            return replace(
                stored,
                confidence=stored.confidence * self._settings.stale_confidence_multiplier,
                source="stale",
            )

        await self._store.insert_price(price)
        self._latest.set(symbol, price)
        return price

    async def _load_at_date(self, symbol: str, day: date) -> EquityPrice:
        end_of_day = datetime.combine(day, time.max, tzinfo=timezone.utc)
        stored = await self._store.get_latest(symbol, at_or_before=end_of_day)
        if stored is not None and stored.price_date.date() == day:
            return stored

        try:
            price = await self._aggregator.aggregate_at_date(symbol, day)
        except NoDataAvailable:
            # Fall back to the last observation within a week (weekends, holidays)
            if stored is not None and day - stored.price_date.date() <= timedelta(days=7):
                return stored
            raise
        await self._store.insert_price(price)
        return price

    async def _adjust(
        self, price: EquityPrice, acknowledge_discontinuity: bool = False
    ) -> EquityPrice:
        adjusted = await self._adjuster.adjusted_price(
            price.symbol,
            price.raw_price,
            price.price_date,
            self._clock(),
            acknowledge_discontinuity,
        )
        return replace(price, adjusted_price=adjusted)
