"""Tests for risk window identification, level bands and merging."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import FIXED_NOW, fixed_clock, make_action
from rwa_oracle.config import RiskSettings
from rwa_oracle.data import RiskStore
from rwa_oracle.models import (
    CorporateActionType,
    RiskFactor,
    RiskFactorType,
    RiskLevel,
    RiskWindow,
)
from rwa_oracle.risk.windows import RiskWindowService, level_for_impact, merge_windows

TODAY = FIXED_NOW.date()


def _factor(factor_type: RiskFactorType, impact: str, description: str = "") -> RiskFactor:
    return RiskFactor(
        factor_type=factor_type,
        description=description or factor_type.value,
        impact=Decimal(impact),
        effective_date=FIXED_NOW,
    )


@pytest.fixture
def collaborators():
    registry = AsyncMock()
    registry.get_verified_actions.return_value = []
    volatility = AsyncMock()
    volatility.get_volatility_30d.return_value = Decimal("0.2")
    volatility.get_largest_gap.return_value = None
    liquidity = AsyncMock()
    liquidity.get_liquidity_score.return_value = Decimal("1")
    return registry, volatility, liquidity


def _service(database, collaborators) -> RiskWindowService:
    registry, volatility, liquidity = collaborators
    return RiskWindowService(
        registry, volatility, liquidity, RiskStore(database), RiskSettings(), clock=fixed_clock
    )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestLevelForImpact:
    @pytest.mark.parametrize(
        "impact, level",
        [
            ("0", RiskLevel.LOW),
            ("0.24", RiskLevel.LOW),
            ("0.25", RiskLevel.MEDIUM),
            ("0.5", RiskLevel.HIGH),
            ("0.74", RiskLevel.HIGH),
            ("0.75", RiskLevel.CRITICAL),
            ("1", RiskLevel.CRITICAL),
        ],
    )
    def test_bands(self, impact, level) -> None:
        assert level_for_impact(Decimal(impact), RiskSettings()) == level


class TestMergeWindows:
    def test_takes_higher_level_widest_bounds_and_union(self) -> None:
        base = RiskWindow(
            symbol="AAPL",
            level=RiskLevel.MEDIUM,
            start_date=FIXED_NOW,
            end_date=FIXED_NOW + timedelta(days=3),
            factors=[_factor(RiskFactorType.LOW_LIQUIDITY, "0.3")],
            id=7,
        )
        other = RiskWindow(
            symbol="AAPL",
            level=RiskLevel.HIGH,
            start_date=FIXED_NOW - timedelta(days=1),
            end_date=FIXED_NOW + timedelta(days=5),
            factors=[
                _factor(RiskFactorType.LOW_LIQUIDITY, "0.4"),
                _factor(RiskFactorType.PRICE_GAP, "0.6"),
            ],
        )
        merged = merge_windows(base, [other])
        assert merged.id == 7
        assert merged.level == RiskLevel.HIGH
        assert merged.start_date == FIXED_NOW - timedelta(days=1)
        assert merged.end_date == FIXED_NOW + timedelta(days=5)
        impacts = {f.factor_type: f.impact for f in merged.factors}
        assert impacts == {
            RiskFactorType.LOW_LIQUIDITY: Decimal("0.4"),
            RiskFactorType.PRICE_GAP: Decimal("0.6"),
        }


# ---------------------------------------------------------------------------
# Identification
# ---------------------------------------------------------------------------


class TestIdentifyRiskWindow:
    @pytest.mark.asyncio
    async def test_quiet_symbol_has_no_window(self, database, collaborators) -> None:
        assert await _service(database, collaborators).identify_risk_window("AAPL") is None

    @pytest.mark.asyncio
    async def test_imminent_merger_is_critical_and_requires_hold(self, database, collaborators) -> None:
        registry, _, _ = collaborators
        registry.get_verified_actions.return_value = [
            make_action(CorporateActionType.MERGER, effective=TODAY + timedelta(days=2), verified=True)
        ]
        window = await _service(database, collaborators).identify_risk_window("aapl")
        assert window is not None
        assert window.symbol == "AAPL"
        assert window.level == RiskLevel.CRITICAL
        assert window.requires_hold
        assert window.is_active(FIXED_NOW)

    @pytest.mark.asyncio
    async def test_split_inside_high_band_is_not_hold(self, database, collaborators) -> None:
        registry, _, _ = collaborators
        registry.get_verified_actions.return_value = [
            make_action(effective=TODAY + timedelta(days=5), verified=True)
        ]
        window = await _service(database, collaborators).identify_risk_window("AAPL")
        assert window.factors[0].impact == Decimal("0.8")
        assert not window.requires_hold

    @pytest.mark.asyncio
    async def test_distant_actions_are_ignored(self, database, collaborators) -> None:
        registry, _, _ = collaborators
        registry.get_verified_actions.return_value = [
            make_action(effective=TODAY + timedelta(days=20), verified=True)
        ]
        assert await _service(database, collaborators).identify_risk_window("AAPL") is None

    @pytest.mark.asyncio
    async def test_price_gap_gives_high_window(self, database, collaborators) -> None:
        _, volatility, _ = collaborators
        volatility.get_largest_gap.return_value = Decimal("0.12")
        window = await _service(database, collaborators).identify_risk_window("AAPL")
        assert window.level == RiskLevel.HIGH
        assert [f.factor_type for f in window.factors] == [RiskFactorType.PRICE_GAP]

    @pytest.mark.asyncio
    async def test_overlapping_windows_merge_into_one(self, database, collaborators) -> None:
        _, volatility, liquidity = collaborators
        service = _service(database, collaborators)
        liquidity.get_liquidity_score.return_value = Decimal("0.6")
        volatility.get_volatility_30d.return_value = Decimal("0.45")
        first = await service.identify_risk_window("AAPL")

        volatility.get_largest_gap.return_value = Decimal("0.12")
        second = await service.identify_risk_window("AAPL", FIXED_NOW + timedelta(hours=1))

        assert second.id == first.id
        assert {f.factor_type for f in second.factors} == {
            RiskFactorType.HIGH_VOLATILITY,
            RiskFactorType.PRICE_GAP,
        }
        store = RiskStore(database)
        windows = await store.get_overlapping_windows(
            "AAPL", FIXED_NOW - timedelta(days=30), FIXED_NOW + timedelta(days=30)
        )
        assert len(windows) == 1
        assert await store.count_factors(first.id) == 2

    @pytest.mark.asyncio
    async def test_repeated_measurements_keep_one_factor_per_type(self, database, collaborators) -> None:
        _, volatility, _ = collaborators
        service = _service(database, collaborators)
        for step, vol in enumerate(["0.41", "0.42", "0.43", "0.44", "0.45"]):
            volatility.get_volatility_30d.return_value = Decimal(vol)
            window = await service.identify_risk_window("AAPL", FIXED_NOW + timedelta(minutes=step))

        assert [f.factor_type for f in window.factors] == [RiskFactorType.HIGH_VOLATILITY]
        assert window.factors[0].details == {"volatility": "0.45"}
        assert window.factors[0].impact == Decimal("0.9000")
        assert await RiskStore(database).count_factors(window.id) == 1

    @pytest.mark.asyncio
    async def test_receded_measurement_is_dropped(self, database, collaborators) -> None:
        _, volatility, _ = collaborators
        service = _service(database, collaborators)
        volatility.get_volatility_30d.return_value = Decimal("0.45")
        first = await service.identify_risk_window("AAPL")

        volatility.get_volatility_30d.return_value = Decimal("0.2")
        volatility.get_largest_gap.return_value = Decimal("0.12")
        second = await service.identify_risk_window("AAPL", FIXED_NOW + timedelta(hours=1))

        assert second.id == first.id
        assert [f.factor_type for f in second.factors] == [RiskFactorType.PRICE_GAP]

    @pytest.mark.asyncio
    async def test_corporate_action_factors_are_kept_per_action(self, database, collaborators) -> None:
        registry, _, _ = collaborators
        service = _service(database, collaborators)
        split = make_action(effective=TODAY + timedelta(days=5), verified=True)
        dividend = make_action(
            CorporateActionType.DIVIDEND, effective=TODAY + timedelta(days=6), verified=True
        )
        registry.get_verified_actions.return_value = [split, dividend]
        await service.identify_risk_window("AAPL")
        window = await service.identify_risk_window("AAPL", FIXED_NOW + timedelta(days=1))

        action_ids = sorted(f.details["action_id"] for f in window.factors)
        assert action_ids == sorted([split.id, dividend.id])
        assert await RiskStore(database).count_factors(window.id) == 2

    @pytest.mark.asyncio
    async def test_active_window_lookup(self, database, collaborators) -> None:
        _, _, liquidity = collaborators
        liquidity.get_liquidity_score.return_value = Decimal("0.1")
        service = _service(database, collaborators)
        saved = await service.identify_risk_window("AAPL")

        active = await service.get_active_window("AAPL")
        assert active.id == saved.id
        assert active.level == RiskLevel.CRITICAL
        assert await service.get_active_window("AAPL", FIXED_NOW + timedelta(days=30)) is None
