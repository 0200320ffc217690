"""Risk assessment: active window + funding-rate magnitude -> score and leverage.

risk_score (0-100) = level points (0/20/40/60)
                   + min(20, sum of factor impacts x 20)
                   + min(20, |funding rate| / rate_cap x 20)

recommended_leverage = clamp(max_leverage / (1 + score / scale), min, max)
"""

import asyncio
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from rwa_oracle.config import FundingSettings, RiskSettings
from rwa_oracle.funding.engine import FundingRateEngine
from rwa_oracle.logging import get_logger
from rwa_oracle.models import (
    FailureKind,
    PositionInfo,
    Result,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    utcnow,
)
from rwa_oracle.risk.windows import RiskWindowService

logger = get_logger(__name__)

_LEVEL_POINTS = {
    RiskLevel.LOW: Decimal("0"),
    RiskLevel.MEDIUM: Decimal("20"),
    RiskLevel.HIGH: Decimal("40"),
    RiskLevel.CRITICAL: Decimal("60"),
}
_COMPONENT_CAP = Decimal("20")
_SCORE_QUANT = Decimal("0.01")


def risk_score(
    level: RiskLevel,
    factors: list[RiskFactor],
    funding_rate: Decimal | None,
    rate_cap: Decimal,
) -> Decimal:
    """Numeric risk score in [0, 100]."""
    impact_points = min(_COMPONENT_CAP, sum((f.impact for f in factors), Decimal("0")) * 20)
    funding_points = Decimal("0")
    if funding_rate is not None and rate_cap > 0:
        funding_points = min(_COMPONENT_CAP, abs(funding_rate) / rate_cap * 20)
    return (_LEVEL_POINTS[level] + impact_points + funding_points).quantize(_SCORE_QUANT)


def recommended_leverage(score: Decimal, settings: RiskSettings) -> Decimal:
    """Leverage inversely proportional to risk score, within [min, max]."""
    raw = settings.max_leverage / (1 + score / settings.leverage_score_scale)
    return max(settings.min_leverage, min(settings.max_leverage, raw)).quantize(_SCORE_QUANT)


class RiskAssessor:
    """Builds RiskAssessments for symbols and optional positions."""

    def __init__(
        self,
        window_service: RiskWindowService,
        funding_engine: FundingRateEngine,
        settings: RiskSettings,
        funding_settings: FundingSettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._windows = window_service
        self._funding = funding_engine
        self._settings = settings
        self._funding_settings = funding_settings
        self._clock = clock

    async def assess_risk(
        self, symbol: str, position: PositionInfo | None = None
    ) -> Result[RiskAssessment]:
        symbol = symbol.strip().upper()
        if not symbol:
            return Result.fail(FailureKind.INVALID, "symbol is required")
        if position is not None and position.leverage <= 0:
            return Result.fail(FailureKind.INVALID, "position leverage must be positive")

        now = self._clock()
        window = await self._windows.identify_risk_window(symbol, now)
        if window is None or not window.is_active(now):
            window = await self._windows.get_active_window(symbol, now)

        funding = await self._funding.get_current_funding_rate(symbol)
        rate = funding.value.rate if funding.ok and funding.value is not None else None
        if rate is None:
            logger.info("risk_without_funding_rate", symbol=symbol, reason=funding.message)

        level = window.level if window is not None else RiskLevel.LOW
        factors = window.factors if window is not None else []
        score = risk_score(level, factors, rate, self._funding_settings.rate_cap)

        assessment = RiskAssessment(
            symbol=symbol,
            risk_level=level,
            risk_score=score,
            recommended_leverage=recommended_leverage(score, self._settings),
            assessed_at=now,
            current_leverage=position.leverage if position is not None else None,
            position_id=position.position_id if position is not None else None,
            active_window=window,
            funding_rate=rate,
            factors=factors,
        )
        logger.debug(
            "risk_assessed",
            symbol=symbol,
            level=level.value,
            score=str(score),
            recommended_leverage=str(assessment.recommended_leverage),
        )
        return Result.success(assessment)

    async def assess_batch_risk(self, symbols: list[str]) -> dict[str, Result[RiskAssessment]]:
        results = await asyncio.gather(*(self.assess_risk(s) for s in symbols))
        return dict(zip(symbols, results))
