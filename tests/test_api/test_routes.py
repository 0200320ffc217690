"""Tests for the HTTP API: status mapping, batch shape, request parsing."""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import FIXED_NOW, make_action, make_rate
from rwa_oracle.api.app import create_app
from rwa_oracle.chain import PublisherFactory
from rwa_oracle.config import PublisherSettings
from rwa_oracle.models import (
    EquityPrice,
    FailureKind,
    Result,
    RiskAction,
    RiskAssessment,
    RiskLevel,
    RiskRecommendation,
)


def _price(symbol: str = "AAPL") -> EquityPrice:
    return EquityPrice(
        symbol=symbol,
        raw_price=Decimal("150"),
        adjusted_price=Decimal("75"),
        confidence=Decimal("0.9"),
        price_date=FIXED_NOW,
    )


def _assessment(leverage: Decimal | None = None) -> RiskAssessment:
    return RiskAssessment(
        symbol="AAPL",
        risk_level=RiskLevel.HIGH,
        risk_score=Decimal("52.00"),
        recommended_leverage=Decimal("1.62"),
        assessed_at=FIXED_NOW,
        current_leverage=leverage,
    )


@pytest.fixture
def services():
    state = MagicMock()
    state.price_service = AsyncMock()
    state.funding_engine = AsyncMock()
    state.risk_assessor = AsyncMock()
    state.recommendation_engine = AsyncMock()
    state.registry = AsyncMock()
    state.publishers = PublisherFactory.from_settings(
        PublisherSettings(enabled_providers=["solana", "ethereum"], primary_provider="solana")
    )
    return state


@pytest.fixture
def client(services) -> TestClient:
    app = create_app()
    for name in (
        "price_service",
        "funding_engine",
        "risk_assessor",
        "recommendation_engine",
        "registry",
        "publishers",
    ):
        setattr(app.state, name, getattr(services, name))
    return TestClient(app)


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


class TestPrices:
    def test_adjusted_price(self, client, services) -> None:
        services.price_service.get_adjusted_price.return_value = Result.success(_price())
        response = client.get("/api/prices/AAPL")
        assert response.status_code == 200
        body = response.json()
        assert body["adjusted_price"] == "75"
        assert body["price_date"] == FIXED_NOW.isoformat()
        services.price_service.get_adjusted_price.assert_awaited_once_with("AAPL", False)

    def test_raw_price_when_not_adjusted(self, client, services) -> None:
        services.price_service.get_raw_price.return_value = Result.success(_price())
        assert client.get("/api/prices/AAPL?adjusted=false").status_code == 200
        services.price_service.get_raw_price.assert_awaited_once_with("AAPL")

    @pytest.mark.parametrize(
        "kind, status",
        [
            (FailureKind.NO_DATA, 404),
            (FailureKind.RATE_LIMITED, 429),
            (FailureKind.UNAVAILABLE, 503),
            (FailureKind.DISCONTINUITY, 409),
        ],
    )
    def test_failures_map_to_status(self, client, services, kind, status) -> None:
        services.price_service.get_adjusted_price.return_value = Result.fail(kind, "why")
        response = client.get("/api/prices/AAPL")
        assert response.status_code == status
        assert response.json() == {"error": kind.value, "message": "why"}

    def test_batch_is_200_with_per_symbol_status(self, client, services) -> None:
        services.price_service.get_batch_prices.return_value = {
            "AAPL": Result.success(_price()),
            "XYZ": Result.fail(FailureKind.NOT_FOUND, "unknown symbol"),
        }
        response = client.get("/api/prices?symbols=aapl, xyz")
        assert response.status_code == 200
        body = response.json()
        assert body["AAPL"]["status"] == "ok"
        assert body["AAPL"]["data"]["raw_price"] == "150"
        assert body["XYZ"] == {"status": "not_found", "message": "unknown symbol"}
        services.price_service.get_batch_prices.assert_awaited_once_with(["AAPL", "XYZ"], adjusted=True)

    def test_history_rejects_inverted_range(self, client, services) -> None:
        response = client.get("/api/prices/AAPL/history?from_date=2024-06-10&to_date=2024-06-01")
        assert response.status_code == 422
        services.price_service.get_price_history.assert_not_awaited()

    def test_price_at_date(self, client, services) -> None:
        services.price_service.get_price_at_date.return_value = Result.success(_price())
        assert client.get("/api/prices/AAPL/at/2024-06-03").status_code == 200
        services.price_service.get_price_at_date.assert_awaited_once_with("AAPL", date(2024, 6, 3))


# ---------------------------------------------------------------------------
# Funding rates
# ---------------------------------------------------------------------------


class TestFundingRates:
    def test_current_rate(self, client, services) -> None:
        services.funding_engine.get_current_funding_rate.return_value = Result.success(make_rate())
        body = client.get("/api/funding-rates/AAPL").json()
        assert Decimal(body["rate"]) == Decimal("0.5")
        assert body["requires_hold"] is False

    def test_calculate_with_mark_price(self, client, services) -> None:
        services.funding_engine.calculate_funding_rate.return_value = Result.success(make_rate())
        response = client.post("/api/funding-rates/AAPL/calculate", json={"mark_price": "105.5"})
        assert response.status_code == 200
        services.funding_engine.calculate_funding_rate.assert_awaited_once_with("AAPL", Decimal("105.5"))

    def test_invalid_mark_price_is_422(self, client, services) -> None:
        services.funding_engine.calculate_funding_rate.return_value = Result.fail(
            FailureKind.INVALID, "mark_price must be positive"
        )
        response = client.post("/api/funding-rates/AAPL/calculate", json={"mark_price": "-1"})
        assert response.status_code == 422

    def test_history_hours_must_be_positive(self, client) -> None:
        assert client.get("/api/funding-rates/AAPL/history?hours=0").status_code == 422

    def test_history_lists_rows(self, client, services) -> None:
        services.funding_engine.get_funding_rate_history.return_value = [make_rate(), make_rate()]
        body = client.get("/api/funding-rates/AAPL/history?hours=6").json()
        assert len(body) == 2
        services.funding_engine.get_funding_rate_history.assert_awaited_once_with("AAPL", 6)


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


class TestRisk:
    def test_assessment_without_position(self, client, services) -> None:
        services.risk_assessor.assess_risk.return_value = Result.success(_assessment())
        body = client.get("/api/risk/AAPL").json()
        assert body["risk_level"] == "high"
        assert "new_recommendations" not in body
        services.recommendation_engine.generate_recommendations.assert_not_awaited()

    def test_position_generates_recommendations(self, client, services) -> None:
        services.risk_assessor.assess_risk.return_value = Result.success(_assessment(Decimal("5")))
        services.recommendation_engine.generate_recommendations.return_value = [
            RiskRecommendation(
                id="rec-1",
                symbol="AAPL",
                action=RiskAction.DELEVERAGE,
                current_leverage=Decimal("5"),
                target_leverage=Decimal("1.62"),
                reason="high risk",
                priority=RiskLevel.HIGH,
                recommended_by=FIXED_NOW,
            )
        ]
        body = client.get("/api/risk/AAPL?leverage=5&position_id=p1").json()
        assert body["new_recommendations"][0]["action"] == "deleverage"
        position = services.risk_assessor.assess_risk.await_args.args[1]
        assert position.leverage == Decimal("5")
        assert position.position_id == "p1"

    def test_acknowledge_unknown_is_404(self, client, services) -> None:
        services.recommendation_engine.acknowledge_recommendation.return_value = Result.fail(
            FailureKind.NOT_FOUND, "recommendation x not found"
        )
        response = client.post("/api/risk/recommendations/x/acknowledge", json={"acknowledged_by": "desk"})
        assert response.status_code == 404
        services.recommendation_engine.acknowledge_recommendation.assert_awaited_once_with("x", "desk")


# ---------------------------------------------------------------------------
# Corporate actions
# ---------------------------------------------------------------------------


class TestCorporateActions:
    def test_manual_entry_created(self, client, services) -> None:
        services.registry.create_corporate_action.return_value = Result.success(make_action())
        response = client.post(
            "/api/corporate-actions",
            json={
                "symbol": "AAPL",
                "action_type": "split",
                "ex_date": "2024-06-12",
                "effective_date": "2024-06-12",
                "split_ratio": "2",
            },
        )
        assert response.status_code == 201
        request = services.registry.create_corporate_action.await_args.args[0]
        assert request.split_ratio == Decimal("2")
        assert request.ex_date == date(2024, 6, 12)

    def test_duplicate_manual_entry_is_409(self, client, services) -> None:
        services.registry.create_corporate_action.return_value = Result.fail(FailureKind.CONFLICT, "dup")
        response = client.post(
            "/api/corporate-actions",
            json={"symbol": "AAPL", "action_type": "split", "ex_date": "2024-06-12", "effective_date": "2024-06-12"},
        )
        assert response.status_code == 409

    def test_unknown_action_type_is_rejected_by_validation(self, client) -> None:
        response = client.post(
            "/api/corporate-actions",
            json={"symbol": "AAPL", "action_type": "bonus", "ex_date": "2024-06-12", "effective_date": "2024-06-12"},
        )
        assert response.status_code == 422

    def test_upcoming_passes_days_ahead(self, client, services) -> None:
        services.registry.get_upcoming_corporate_actions.return_value = [make_action()]
        body = client.get("/api/corporate-actions/AAPL/upcoming?days_ahead=14").json()
        assert body[0]["action_type"] == "split"
        services.registry.get_upcoming_corporate_actions.assert_awaited_once_with("AAPL", 14)


# ---------------------------------------------------------------------------
# On-chain
# ---------------------------------------------------------------------------


class TestOnChain:
    def test_nothing_published_is_404(self, client) -> None:
        assert client.get("/api/on-chain/AAPL").status_code == 404

    def test_reads_primary_after_publish(self, client, services) -> None:
        publisher = services.publishers.get_primary_publisher()
        asyncio.run(publisher.publish_funding_rate("AAPL", make_rate()))
        body = client.get("/api/on-chain/AAPL").json()
        assert body["provider_type"] == "solana"
        assert Decimal(body["rate"]) == Decimal("0.5")

    def test_unknown_provider_is_422(self, client) -> None:
        assert client.get("/api/on-chain/AAPL?provider=dogechain").status_code == 422

    def test_unconfigured_provider_is_404(self, client) -> None:
        response = client.get("/api/on-chain/AAPL?provider=polygon")
        assert response.status_code == 404
        assert "not configured" in response.json()["message"]
