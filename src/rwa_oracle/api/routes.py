"""JSON endpoints over the oracle services.

Services are read from request.app.state, where main.py's lifespan puts
them. Single-item failures map to an HTTP status; batch endpoints always
answer 200 with a status per item.
"""

import dataclasses
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rwa_oracle.data.codec import day_start
from rwa_oracle.models import (
    BlockchainProviderType,
    CorporateActionRequest,
    CorporateActionType,
    FailureKind,
    PositionInfo,
    Result,
)

router = APIRouter()

_STATUS_BY_FAILURE = {
    FailureKind.NO_DATA: 404,
    FailureKind.NOT_FOUND: 404,
    FailureKind.INVALID: 422,
    FailureKind.CONFLICT: 409,
    FailureKind.DISCONTINUITY: 409,
    FailureKind.RATE_LIMITED: 429,
    FailureKind.UNAVAILABLE: 503,
    FailureKind.PUBLISH_FAILED: 503,
}


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimals, dates, enums and dataclasses for JSON."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _decimal_to_str(dataclasses.asdict(obj))
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_decimal_to_str(item) for item in obj]
    return obj


def _error(status_code: int, failure: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": failure, "message": message})


def _respond(result: Result[Any]) -> JSONResponse:
    if result.ok:
        return JSONResponse(content=_decimal_to_str(result.value))
    assert result.failure is not None
    return _error(_STATUS_BY_FAILURE[result.failure], result.failure.value, result.message)


def _batch(results: dict[str, Result[Any]]) -> JSONResponse:
    content = {}
    for symbol, result in results.items():
        if result.ok:
            content[symbol] = {"status": "ok", "data": _decimal_to_str(result.value)}
        else:
            assert result.failure is not None
            content[symbol] = {
                "status": result.failure.value,
                "message": result.message,
            }
    return JSONResponse(content=content)


def _split_symbols(symbols: str) -> list[str]:
    return [s.strip().upper() for s in symbols.split(",") if s.strip()]


# ---- prices ----


@router.get("/prices")
async def get_batch_prices(
    request: Request, symbols: str = Query(...), adjusted: bool = True
) -> JSONResponse:
    service = request.app.state.price_service
    return _batch(await service.get_batch_prices(_split_symbols(symbols), adjusted=adjusted))


@router.get("/prices/{symbol}")
async def get_price(
    request: Request,
    symbol: str,
    adjusted: bool = True,
    acknowledge_discontinuity: bool = False,
) -> JSONResponse:
    service = request.app.state.price_service
    if adjusted:
        return _respond(await service.get_adjusted_price(symbol, acknowledge_discontinuity))
    return _respond(await service.get_raw_price(symbol))


@router.get("/prices/{symbol}/history")
async def get_price_history(
    request: Request, symbol: str, from_date: date, to_date: date
) -> JSONResponse:
    if from_date > to_date:
        return _error(422, FailureKind.INVALID.value, "from_date must not be after to_date")
    service = request.app.state.price_service
    end = datetime.combine(to_date, time.max, tzinfo=timezone.utc)
    return _respond(await service.get_price_history(symbol, day_start(from_date), end))


@router.get("/prices/{symbol}/at/{day}")
async def get_price_at_date(request: Request, symbol: str, day: date) -> JSONResponse:
    service = request.app.state.price_service
    return _respond(await service.get_price_at_date(symbol, day))


# ---- funding rates ----


class CalculateFundingRateBody(BaseModel):
    mark_price: Decimal | None = None


@router.get("/funding-rates")
async def get_batch_funding_rates(request: Request, symbols: str = Query(...)) -> JSONResponse:
    engine = request.app.state.funding_engine
    return _batch(await engine.get_batch_funding_rates(_split_symbols(symbols)))


@router.get("/funding-rates/{symbol}")
async def get_funding_rate(request: Request, symbol: str) -> JSONResponse:
    return _respond(await request.app.state.funding_engine.get_current_funding_rate(symbol))


@router.post("/funding-rates/{symbol}/calculate")
async def calculate_funding_rate(
    request: Request, symbol: str, body: CalculateFundingRateBody | None = None
) -> JSONResponse:
    mark_price = body.mark_price if body is not None else None
    engine = request.app.state.funding_engine
    return _respond(await engine.calculate_funding_rate(symbol, mark_price))


@router.get("/funding-rates/{symbol}/history")
async def get_funding_rate_history(
    request: Request, symbol: str, hours: int = Query(24, ge=1, le=24 * 90)
) -> JSONResponse:
    rates = await request.app.state.funding_engine.get_funding_rate_history(symbol, hours)
    return JSONResponse(content=_decimal_to_str(rates))


@router.get("/funding-rates/{symbol}/factors")
async def get_funding_rate_factors(request: Request, symbol: str) -> JSONResponse:
    return _respond(await request.app.state.funding_engine.get_funding_rate_factors(symbol))


# ---- risk ----


@router.get("/risk")
async def assess_batch_risk(request: Request, symbols: str = Query(...)) -> JSONResponse:
    assessor = request.app.state.risk_assessor
    return _batch(await assessor.assess_batch_risk(_split_symbols(symbols)))


@router.get("/risk/{symbol}")
async def assess_risk(
    request: Request,
    symbol: str,
    leverage: Decimal | None = None,
    position_id: str | None = None,
) -> JSONResponse:
    """Assessment, plus any recommendations generated when a position is supplied."""
    position = PositionInfo(leverage=leverage, position_id=position_id) if leverage is not None else None
    result = await request.app.state.risk_assessor.assess_risk(symbol, position)
    if not result.ok or position is None:
        return _respond(result)

    recommendations = await request.app.state.recommendation_engine.generate_recommendations(
        result.value
    )
    content = _decimal_to_str(result.value)
    content["new_recommendations"] = _decimal_to_str(recommendations)
    return JSONResponse(content=content)


@router.get("/risk/{symbol}/recommendations")
async def get_recommendations(request: Request, symbol: str) -> JSONResponse:
    recs = await request.app.state.recommendation_engine.get_recommendations(symbol)
    return JSONResponse(content=_decimal_to_str(recs))


class AcknowledgeBody(BaseModel):
    acknowledged_by: str | None = None


@router.post("/risk/recommendations/{recommendation_id}/acknowledge")
async def acknowledge_recommendation(
    request: Request, recommendation_id: str, body: AcknowledgeBody | None = None
) -> JSONResponse:
    by = body.acknowledged_by if body is not None else None
    engine = request.app.state.recommendation_engine
    return _respond(await engine.acknowledge_recommendation(recommendation_id, by))


# ---- corporate actions ----


class CorporateActionBody(BaseModel):
    symbol: str
    action_type: CorporateActionType
    ex_date: date
    effective_date: date
    record_date: date | None = None
    split_ratio: Decimal | None = None
    dividend_amount: Decimal | None = None
    dividend_currency: str | None = None
    acquiring_symbol: str | None = None
    exchange_ratio: Decimal | None = None
    data_source: str = "manual"
    external_id: str | None = None


@router.post("/corporate-actions/{symbol}/fetch")
async def fetch_corporate_actions(
    request: Request, symbol: str, from_date: date | None = None
) -> JSONResponse:
    registry = request.app.state.registry
    return _respond(await registry.fetch_corporate_actions(symbol, from_date))


@router.get("/corporate-actions/{symbol}")
async def get_corporate_actions(
    request: Request,
    symbol: str,
    from_date: date | None = None,
    to_date: date | None = None,
) -> JSONResponse:
    actions = await request.app.state.registry.get_corporate_actions(symbol, from_date, to_date)
    return JSONResponse(content=_decimal_to_str(actions))


@router.get("/corporate-actions/{symbol}/upcoming")
async def get_upcoming_corporate_actions(
    request: Request, symbol: str, days_ahead: int | None = None
) -> JSONResponse:
    registry = request.app.state.registry
    actions = await registry.get_upcoming_corporate_actions(symbol, days_ahead)
    return JSONResponse(content=_decimal_to_str(actions))


@router.post("/corporate-actions")
async def create_corporate_action(request: Request, body: CorporateActionBody) -> JSONResponse:
    action_request = CorporateActionRequest(**body.model_dump())
    result = await request.app.state.registry.create_corporate_action(action_request)
    if result.ok:
        return JSONResponse(status_code=201, content=_decimal_to_str(result.value))
    return _respond(result)


# ---- on-chain ----


@router.get("/on-chain/{symbol}")
async def read_on_chain_rate(
    request: Request, symbol: str, provider: str | None = None
) -> JSONResponse:
    publishers = request.app.state.publishers
    if provider is None:
        publisher = publishers.get_primary_publisher()
    else:
        try:
            provider_type = BlockchainProviderType(provider.lower())
        except ValueError:
            return _error(422, FailureKind.INVALID.value, f"unknown provider: {provider}")
        if not publishers.is_provider_available(provider_type):
            return _error(404, FailureKind.NOT_FOUND.value, f"{provider} is not configured")
        publisher = publishers.get_publisher(provider_type)

    on_chain = await publisher.read_funding_rate(symbol)
    if on_chain is None:
        return _error(404, FailureKind.NOT_FOUND.value, f"{symbol.upper()}: nothing published")
    return JSONResponse(content=_decimal_to_str(on_chain))
