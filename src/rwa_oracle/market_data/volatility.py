"""Realized volatility and single-day price gaps from stored closes.

Returns are computed on a split/dividend-continuous basis: each previous
close is scaled by the adjustment factor between the two days, so a 2:1
split does not show up as a -50% day.
"""

import math
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from rwa_oracle.corporate_actions.adjustment import PriceAdjuster
from rwa_oracle.data.price_store import PriceStore
from rwa_oracle.logging import get_logger
from rwa_oracle.models import utcnow

logger = get_logger(__name__)

TRADING_DAYS_PER_YEAR = 252
_ANNUALIZATION = Decimal(str(math.sqrt(TRADING_DAYS_PER_YEAR)))
_QUANT = Decimal("0.000001")


class VolatilityService:
    """Annualized realized volatility and gap detection per symbol."""

    def __init__(
        self,
        price_store: PriceStore,
        adjuster: PriceAdjuster,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = price_store
        self._adjuster = adjuster
        self._clock = clock

    async def daily_returns(self, symbol: str, days: int) -> list[Decimal]:
        """Adjusted close-to-close returns over the trailing window, oldest first."""
        today = self._clock().date()
        closes = await self._store.get_daily_closes(
            symbol.upper(), today - timedelta(days=days), today
        )
        returns = []
        for (prev_day, prev_close), (day, close) in zip(closes, closes[1:]):
            factor = await self._adjuster.adjustment_factor(
                symbol, prev_day, day, acknowledge_discontinuity=True
            )
            base = prev_close * factor
            if base > 0:
                returns.append(close / base - 1)
        return returns

    async def get_volatility_30d(self, symbol: str) -> Decimal | None:
        """Sample standard deviation of daily returns x sqrt(252).

        None when fewer than two returns are available.
        """
        returns = await self.daily_returns(symbol, 30)
        if len(returns) < 2:
            return None
        mean = sum(returns, Decimal("0")) / len(returns)
        variance = sum(((r - mean) ** 2 for r in returns), Decimal("0")) / (len(returns) - 1)
        volatility = (variance.sqrt() * _ANNUALIZATION).quantize(_QUANT)
        logger.debug("volatility_computed", symbol=symbol, volatility=str(volatility), samples=len(returns))
        return volatility

    async def get_largest_gap(self, symbol: str, days: int = 7) -> Decimal | None:
        """Largest absolute single-day adjusted return in the window."""
        returns = await self.daily_returns(symbol, days)
        if not returns:
            return None
        return max(abs(r) for r in returns).quantize(_QUANT)
