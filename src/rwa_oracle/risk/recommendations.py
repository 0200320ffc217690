"""Leverage recommendations from risk assessments.

- Hold: a merger or spin-off is in the active window.
- Deleverage: current leverage exceeds the recommendation by more than
  the hysteresis band. While an unacknowledged, unexpired Deleverage for
  the same position is open, no new one is issued.
- ReturnToBaseline: no active window, level Low, and current leverage is
  below the target (baseline, capped at the recommended leverage) by more
  than the hysteresis band.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

from rwa_oracle.config import RiskSettings
from rwa_oracle.data.risk_store import RiskStore
from rwa_oracle.logging import get_logger
from rwa_oracle.models import (
    FailureKind,
    Result,
    RiskAction,
    RiskAssessment,
    RiskLevel,
    RiskRecommendation,
    utcnow,
)

logger = get_logger(__name__)

_PCT_QUANT = Decimal("0.01")


class RecommendationEngine:
    """Creates, lists and acknowledges RiskRecommendations."""

    def __init__(
        self,
        store: RiskStore,
        settings: RiskSettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    async def generate_recommendations(
        self, assessment: RiskAssessment
    ) -> list[RiskRecommendation]:
        """Zero or more new recommendations for an assessed position."""
        current = assessment.current_leverage
        if current is None:
            return []

        now = self._clock()
        open_recs = [
            r
            for r in await self._store.list_open_recommendations(assessment.symbol, now)
            if r.position_id == assessment.position_id
        ]
        open_actions = {r.action for r in open_recs}
        window = assessment.active_window

        if window is not None and window.requires_hold:
            if RiskAction.HOLD in open_actions:
                return []
            rec = self._build(
                assessment,
                RiskAction.HOLD,
                target=current,
                reason="merger or spin-off pending; hold until the successor symbol is resolved",
                priority=window.level,
                now=now,
            )
            await self._store.insert_recommendation(rec)
            self._log(rec)
            return [rec]

        recommended = assessment.recommended_leverage
        band = self._settings.hysteresis

        if current > recommended * (1 + band):
            if RiskAction.DELEVERAGE in open_actions:
                logger.debug(
                    "deleverage_suppressed",
                    symbol=assessment.symbol,
                    position_id=assessment.position_id,
                )
                return []
            rec = self._build(
                assessment,
                RiskAction.DELEVERAGE,
                target=recommended,
                reason=(
                    f"{assessment.risk_level.value} risk (score {assessment.risk_score}); "
                    f"leverage {current}x exceeds recommended {recommended}x"
                ),
                priority=max(assessment.risk_level, RiskLevel.MEDIUM, key=lambda lv: lv.rank),
                now=now,
            )
            rec.reduction_percentage = ((current - recommended) / current * 100).quantize(_PCT_QUANT)
            await self._store.insert_recommendation(rec)
            self._log(rec)
            return [rec]

        window_active = window is not None and window.is_active(now)
        target = min(self._settings.baseline_leverage, recommended)
        if (
            not window_active
            and assessment.risk_level == RiskLevel.LOW
            and current < target * (1 - band)
        ):
            if RiskAction.RETURN_TO_BASELINE in open_actions:
                return []
            rec = self._build(
                assessment,
                RiskAction.RETURN_TO_BASELINE,
                target=target,
                reason=f"risk receded; leverage {current}x can return toward {target}x",
                priority=RiskLevel.LOW,
                now=now,
            )
            rec.increase_percentage = ((target - current) / current * 100).quantize(_PCT_QUANT)
            await self._store.insert_recommendation(rec)
            self._log(rec)
            return [rec]

        return []

    async def get_recommendations(self, symbol: str) -> list[RiskRecommendation]:
        """Unacknowledged, unexpired recommendations, highest priority first."""
        return await self._store.list_open_recommendations(symbol.upper(), self._clock())

    async def acknowledge_recommendation(
        self, recommendation_id: str, acknowledged_by: str | None = None
    ) -> Result[RiskRecommendation]:
        """One-way acknowledgement. Re-acknowledging is a no-op success."""
        rec = await self._store.get_recommendation(recommendation_id)
        if rec is None:
            return Result.fail(FailureKind.NOT_FOUND, f"recommendation {recommendation_id} not found")
        if rec.acknowledged:
            return Result.success(rec)

        await self._store.acknowledge(recommendation_id, acknowledged_by, self._clock())
        updated = await self._store.get_recommendation(recommendation_id)
        assert updated is not None
        logger.info(
            "recommendation_acknowledged",
            recommendation_id=recommendation_id,
            symbol=updated.symbol,
            acknowledged_by=acknowledged_by,
        )
        return Result.success(updated)

    def _build(
        self,
        assessment: RiskAssessment,
        action: RiskAction,
        target: Decimal,
        reason: str,
        priority: RiskLevel,
        now: datetime,
    ) -> RiskRecommendation:
        assert assessment.current_leverage is not None
        return RiskRecommendation(
            id=str(uuid.uuid4()),
            symbol=assessment.symbol,
            position_id=assessment.position_id,
            action=action,
            current_leverage=assessment.current_leverage,
            target_leverage=target,
            reason=reason,
            priority=priority,
            recommended_by=now,
            valid_until=now + timedelta(hours=self._settings.recommendation_validity_hours),
        )

    def _log(self, rec: RiskRecommendation) -> None:
        logger.info(
            "recommendation_created",
            symbol=rec.symbol,
            action=rec.action.value,
            current_leverage=str(rec.current_leverage),
            target_leverage=str(rec.target_leverage),
            priority=rec.priority.value,
        )
