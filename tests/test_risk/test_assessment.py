"""Tests for risk scoring, leverage mapping and RiskAssessor."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FIXED_NOW, fixed_clock
from rwa_oracle.config import FundingSettings, RiskSettings
from rwa_oracle.models import (
    FailureKind,
    PositionInfo,
    Result,
    RiskFactor,
    RiskFactorType,
    RiskLevel,
    RiskWindow,
)
from rwa_oracle.risk.assessment import RiskAssessor, recommended_leverage, risk_score


def _window(level: RiskLevel, impact: str) -> RiskWindow:
    return RiskWindow(
        symbol="AAPL",
        level=level,
        start_date=FIXED_NOW - timedelta(hours=1),
        end_date=FIXED_NOW + timedelta(days=3),
        factors=[
            RiskFactor(
                factor_type=RiskFactorType.LOW_LIQUIDITY,
                description="thin book",
                impact=Decimal(impact),
                effective_date=FIXED_NOW,
            )
        ],
        id=1,
    )


# ---------------------------------------------------------------------------
# Score and leverage
# ---------------------------------------------------------------------------


class TestRiskScore:
    def test_quiet_symbol_scores_zero(self) -> None:
        assert risk_score(RiskLevel.LOW, [], None, Decimal("100")) == Decimal("0")

    def test_components_are_capped_at_100(self) -> None:
        window = _window(RiskLevel.CRITICAL, "1")
        score = risk_score(RiskLevel.CRITICAL, window.factors * 3, Decimal("-250"), Decimal("100"))
        assert score == Decimal("100")

    def test_funding_magnitude_counts_either_sign(self) -> None:
        up = risk_score(RiskLevel.MEDIUM, [], Decimal("50"), Decimal("100"))
        down = risk_score(RiskLevel.MEDIUM, [], Decimal("-50"), Decimal("100"))
        assert up == down == Decimal("30")

    def test_score_is_monotone_in_level(self) -> None:
        scores = [
            risk_score(level, [], None, Decimal("100"))
            for level in (RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL)
        ]
        assert scores == sorted(scores)


class TestRecommendedLeverage:
    @pytest.mark.parametrize(
        "score, leverage",
        [("0", "5"), ("25", "2.5"), ("100", "1"), ("1000", "1")],
    )
    def test_inverse_mapping_within_bounds(self, score, leverage) -> None:
        assert recommended_leverage(Decimal(score), RiskSettings()) == Decimal(leverage)

    def test_higher_score_never_raises_leverage(self) -> None:
        settings = RiskSettings()
        values = [recommended_leverage(Decimal(s), settings) for s in range(0, 101, 10)]
        assert values == sorted(values, reverse=True)


# ---------------------------------------------------------------------------
# Assessor
# ---------------------------------------------------------------------------


@pytest.fixture
def assessor_parts():
    windows = AsyncMock()
    windows.identify_risk_window.return_value = None
    windows.get_active_window.return_value = None
    funding = AsyncMock()
    funding.get_current_funding_rate.return_value = Result.success(MagicMock(rate=Decimal("0")))
    assessor = RiskAssessor(windows, funding, RiskSettings(), FundingSettings(), clock=fixed_clock)
    return assessor, windows, funding


class TestRiskAssessor:
    @pytest.mark.asyncio
    async def test_quiet_symbol_gets_max_leverage(self, assessor_parts) -> None:
        assessor, _, _ = assessor_parts
        result = await assessor.assess_risk("aapl")
        assert result.ok
        assessment = result.value
        assert assessment.symbol == "AAPL"
        assert assessment.risk_level == RiskLevel.LOW
        assert assessment.risk_score == Decimal("0")
        assert assessment.recommended_leverage == Decimal("5")
        assert assessment.current_leverage is None

    @pytest.mark.asyncio
    async def test_active_window_drives_level_and_factors(self, assessor_parts) -> None:
        assessor, windows, _ = assessor_parts
        windows.identify_risk_window.return_value = _window(RiskLevel.HIGH, "0.6")
        result = await assessor.assess_risk("AAPL", PositionInfo(Decimal("4"), "pos-1"))
        assessment = result.value
        assert assessment.risk_level == RiskLevel.HIGH
        assert assessment.risk_score == Decimal("52.00")
        assert assessment.current_leverage == Decimal("4")
        assert assessment.position_id == "pos-1"
        assert assessment.active_window.id == 1
        assert len(assessment.factors) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_stored_window(self, assessor_parts) -> None:
        assessor, windows, _ = assessor_parts
        windows.get_active_window.return_value = _window(RiskLevel.MEDIUM, "0.3")
        result = await assessor.assess_risk("AAPL")
        assert result.value.risk_level == RiskLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_missing_funding_rate_still_assesses(self, assessor_parts) -> None:
        assessor, _, funding = assessor_parts
        funding.get_current_funding_rate.return_value = Result.fail(FailureKind.NO_DATA, "no spot")
        result = await assessor.assess_risk("AAPL")
        assert result.ok
        assert result.value.funding_rate is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("leverage", ["0", "-2"])
    async def test_non_positive_leverage_is_invalid(self, assessor_parts, leverage) -> None:
        assessor, _, _ = assessor_parts
        result = await assessor.assess_risk("AAPL", PositionInfo(Decimal(leverage)))
        assert result.failure == FailureKind.INVALID

    @pytest.mark.asyncio
    async def test_blank_symbol_is_invalid(self, assessor_parts) -> None:
        assessor, _, _ = assessor_parts
        result = await assessor.assess_risk("  ")
        assert result.failure == FailureKind.INVALID

    @pytest.mark.asyncio
    async def test_batch_keys_by_symbol(self, assessor_parts) -> None:
        assessor, _, _ = assessor_parts
        results = await assessor.assess_batch_risk(["AAPL", "MSFT"])
        assert set(results) == {"AAPL", "MSFT"}
        assert all(r.ok for r in results.values())
