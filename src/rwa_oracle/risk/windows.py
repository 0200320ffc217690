"""Risk window identification.

Collects the risk factors active for a symbol at an instant, maps the
strongest factor's impact to a RiskLevel, and persists the result as a
window. A symbol has at most one window covering any instant: a candidate
that overlaps stored windows is merged into them (higher level, union of
factors, widest bounds). Measured factors (volatility, liquidity, gap) are
replaced by the latest measurement and dropped once they recede.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

from rwa_oracle.config import RiskSettings
from rwa_oracle.corporate_actions.registry import CorporateActionRegistry
from rwa_oracle.data.codec import day_start
from rwa_oracle.data.risk_store import RiskStore
from rwa_oracle.logging import get_logger
from rwa_oracle.market_data.liquidity import LiquidityService
from rwa_oracle.market_data.volatility import VolatilityService
from rwa_oracle.models import (
    RiskFactor,
    RiskFactorType,
    RiskLevel,
    RiskWindow,
    utcnow,
)

logger = get_logger(__name__)

_ONE = Decimal("1")
_IMPACT_QUANT = Decimal("0.0001")


def level_for_impact(impact: Decimal, settings: RiskSettings) -> RiskLevel:
    """Map a factor impact in [0, 1] to a RiskLevel band."""
    if impact >= settings.critical_impact:
        return RiskLevel.CRITICAL
    if impact >= settings.high_impact:
        return RiskLevel.HIGH
    if impact >= settings.medium_impact:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def merge_windows(base: RiskWindow, others: list[RiskWindow]) -> RiskWindow:
    """Fold overlapping windows into `base`, keeping its id.

    Factors are unioned by identity (RiskFactor.key). A factor from a later
    window replaces the same factor from an earlier one, so pass the freshest
    window last.
    """
    factors: dict[tuple[str, str], RiskFactor] = {f.key: f for f in base.factors}
    level = base.level
    start, end = base.start_date, base.end_date
    for other in others:
        if other.level.rank > level.rank:
            level = other.level
        start = min(start, other.start_date)
        end = max(end, other.end_date)
        for factor in other.factors:
            factors[factor.key] = factor
    return RiskWindow(
        id=base.id,
        symbol=base.symbol,
        level=level,
        start_date=start,
        end_date=end,
        factors=list(factors.values()),
        created_at=base.created_at,
    )


class RiskWindowService:
    """Identifies, merges and stores risk windows."""

    def __init__(
        self,
        registry: CorporateActionRegistry,
        volatility_service: VolatilityService,
        liquidity_service: LiquidityService,
        store: RiskStore,
        settings: RiskSettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._volatility = volatility_service
        self._liquidity = liquidity_service
        self._store = store
        self._settings = settings
        self._clock = clock

    async def collect_factors(
        self, symbol: str, at: datetime
    ) -> list[tuple[RiskFactor, datetime, datetime]]:
        """Active factors with the interval each one implies."""
        s = self._settings
        symbol = symbol.upper()
        factors: list[tuple[RiskFactor, datetime, datetime]] = []
        default_end = at + timedelta(days=s.window_days)

        for action in await self._registry.get_verified_actions(symbol):
            days = (action.effective_date - at.date()).days
            if abs(days) > s.corporate_action_high_days:
                continue
            impact = Decimal("1.0") if abs(days) <= s.corporate_action_critical_days else Decimal("0.8")
            effective = day_start(action.effective_date)
            factors.append(
                (
                    RiskFactor(
                        factor_type=RiskFactorType.CORPORATE_ACTION_PROXIMITY,
                        description=f"{action.action_type.value} effective {action.effective_date.isoformat()}",
                        impact=impact,
                        effective_date=effective,
                        details={
                            "action_id": action.id,
                            "action_type": action.action_type.value,
                            "days_until": days,
                            "discontinuity": action.is_discontinuity,
                        },
                    ),
                    min(at, effective - timedelta(days=s.corporate_action_critical_days)),
                    effective + timedelta(days=s.corporate_action_critical_days),
                )
            )

        volatility = await self._volatility.get_volatility_30d(symbol)
        if volatility is not None and volatility > s.volatility_threshold:
            impact = min(Decimal("0.9"), volatility / Decimal("0.5")).quantize(_IMPACT_QUANT)
            factors.append(
                (
                    RiskFactor(
                        factor_type=RiskFactorType.HIGH_VOLATILITY,
                        description=f"30d volatility {volatility} above {s.volatility_threshold}",
                        impact=impact,
                        effective_date=at,
                        details={"volatility": str(volatility)},
                    ),
                    at,
                    default_end,
                )
            )

        liquidity = await self._liquidity.get_liquidity_score(symbol)
        if liquidity < s.liquidity_threshold:
            factors.append(
                (
                    RiskFactor(
                        factor_type=RiskFactorType.LOW_LIQUIDITY,
                        description=f"liquidity score {liquidity} below {s.liquidity_threshold}",
                        impact=(_ONE - liquidity).quantize(_IMPACT_QUANT),
                        effective_date=at,
                        details={"liquidity_score": str(liquidity)},
                    ),
                    at,
                    default_end,
                )
            )

        gap = await self._volatility.get_largest_gap(symbol, days=s.window_days)
        if gap is not None and gap > s.price_gap_threshold:
            impact = min(_ONE, gap / (2 * s.price_gap_threshold)).quantize(_IMPACT_QUANT)
            factors.append(
                (
                    RiskFactor(
                        factor_type=RiskFactorType.PRICE_GAP,
                        description=f"single-day move of {gap} above {s.price_gap_threshold}",
                        impact=impact,
                        effective_date=at,
                        details={"gap": str(gap)},
                    ),
                    at,
                    default_end,
                )
            )

        return factors

    async def identify_risk_window(
        self, symbol: str, at: datetime | None = None
    ) -> RiskWindow | None:
        """Build, merge and persist the window for `at`; None when no factor is active."""
        at = at or self._clock()
        symbol = symbol.upper()
        collected = await self.collect_factors(symbol, at)
        if not collected:
            return None

        factors = [factor for factor, _, _ in collected]
        candidate = RiskWindow(
            symbol=symbol,
            level=level_for_impact(max(f.impact for f in factors), self._settings),
            start_date=min(start for _, start, _ in collected),
            end_date=max(end for _, _, end in collected),
            factors=factors,
        )

        overlapping = await self._store.get_overlapping_windows(
            symbol, candidate.start_date, candidate.end_date
        )
        if overlapping:
            # the candidate carries the current measurements; stored ones are superseded
            overlapping = [
                replace(w, factors=[f for f in w.factors if not f.is_measured]) for w in overlapping
            ]
            base, rest = overlapping[0], overlapping[1:]
            window = merge_windows(base, [*rest, candidate])
            for stale in rest:
                assert stale.id is not None
                await self._store.delete_window(stale.id)
        else:
            window = candidate

        saved = await self._store.save_window(window)
        logger.info(
            "risk_window_identified",
            symbol=symbol,
            level=saved.level.value,
            factors=[f.factor_type.value for f in saved.factors],
            merged=bool(overlapping),
        )
        return saved

    async def get_active_window(self, symbol: str, at: datetime | None = None) -> RiskWindow | None:
        return await self._store.get_active_window(symbol.upper(), at or self._clock())
