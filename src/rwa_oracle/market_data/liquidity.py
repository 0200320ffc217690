"""Liquidity score derived from the stored observation history.

score = 0.3 x availability + 0.5 x stability + 0.2 x recent activity
- availability: days with data over the last 30 / 30
- stability: 1 - 2 x coefficient of variation of closes (floored at 0)
- recent activity: days with data over the last 7 / 7
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from rwa_oracle.data.price_store import PriceStore
from rwa_oracle.logging import get_logger
from rwa_oracle.models import utcnow

logger = get_logger(__name__)

_ZERO = Decimal("0")
_ONE = Decimal("1")
_WEIGHT_AVAILABILITY = Decimal("0.3")
_WEIGHT_STABILITY = Decimal("0.5")
_WEIGHT_RECENT = Decimal("0.2")


class LiquidityService:
    """Liquidity score in [0, 1] per symbol."""

    def __init__(
        self,
        price_store: PriceStore,
        default_score: Decimal = Decimal("0.5"),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = price_store
        self._default = default_score
        self._clock = clock

    async def get_liquidity_score(self, symbol: str) -> Decimal:
        today = self._clock().date()
        closes = await self._store.get_daily_closes(symbol.upper(), today - timedelta(days=30), today)
        if not closes:
            return self._default

        prices = [price for _, price in closes]
        availability = min(Decimal(len(closes)) / 30, _ONE)

        mean = sum(prices, _ZERO) / len(prices)
        if mean > 0 and len(prices) > 1:
            variance = sum(((p - mean) ** 2 for p in prices), _ZERO) / len(prices)
            cv = variance.sqrt() / mean
            stability = max(_ZERO, _ONE - 2 * cv)
        else:
            stability = _ONE

        recent_start = today - timedelta(days=7)
        recent = min(Decimal(sum(1 for day, _ in closes if day > recent_start)) / 7, _ONE)

        score = (
            _WEIGHT_AVAILABILITY * availability
            + _WEIGHT_STABILITY * stability
            + _WEIGHT_RECENT * recent
        )
        score = min(max(score, _ZERO), _ONE).quantize(Decimal("0.0001"))
        logger.debug("liquidity_computed", symbol=symbol, score=str(score), days=len(closes))
        return score
