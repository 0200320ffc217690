"""Funding-rate calculation engine.

Rates are annualized percentages:

    premium            = mark - adjusted_spot
    premium_percentage = premium / adjusted_spot x 100
    base_rate          = clamp(premium_percentage x k_base, +-base_cap)
    ca_adjustment      = -k_ca x proximity(nearest dividend)   (splits 0, mergers flag hold)
    liquidity_adj      = (1 - liquidity_score) x k_liquidity
    volatility_adj     = max(0, (volatility_30d - baseline) x k_vol)
    rate               = clamp(sum, +-rate_cap)
    hourly_rate        = rate / 8760

Rows are append-only. The current rate is the newest row whose
valid_until has not passed; an expired row triggers recomputation.
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import date, datetime, timedelta
from decimal import ROUND_DOWN, Decimal

from rwa_oracle.config import FundingSettings
from rwa_oracle.corporate_actions.registry import CorporateActionRegistry
from rwa_oracle.data.funding_store import FundingRateStore
from rwa_oracle.exceptions import (
    CorporateActionDiscontinuity,
    NoDataAvailable,
    ProviderError,
)
from rwa_oracle.logging import get_logger
from rwa_oracle.market_data.liquidity import LiquidityService
from rwa_oracle.market_data.mark_price import MarkPriceSource
from rwa_oracle.market_data.price_service import EquityPriceService
from rwa_oracle.market_data.volatility import VolatilityService
from rwa_oracle.models import (
    CorporateAction,
    CorporateActionType,
    FailureKind,
    FundingInputs,
    FundingRate,
    FundingRateFactors,
    Result,
    failure_from_exception,
    utcnow,
)

logger = get_logger(__name__)

HOURS_PER_YEAR = Decimal(365 * 24)
_ZERO = Decimal("0")
_ONE = Decimal("1")
_RATE_QUANT = Decimal("0.00000001")
_HOURLY_QUANT = Decimal("0.000000000001")


def _clamp(value: Decimal, cap: Decimal) -> Decimal:
    return max(-cap, min(cap, value))


def corporate_action_adjustment(
    actions: list[CorporateAction], today: date, settings: FundingSettings
) -> tuple[Decimal, bool]:
    """Proximity penalty from verified actions near today.

    Returns (adjustment, requires_hold). Dividends inside the window push
    the rate down in proportion to how close the nearest one is. Splits
    are neutral once prices are adjusted. A merger or spin-off inside the
    window sets requires_hold.
    """
    best_proximity = _ZERO
    requires_hold = False
    for action in actions:
        if not action.is_verified:
            continue
        days = (action.effective_date - today).days
        window = (
            settings.corporate_action_lookahead_days
            if days >= 0
            else settings.corporate_action_lookback_days
        )
        if abs(days) > window:
            continue
        if action.is_discontinuity:
            requires_hold = True
            continue
        if action.action_type == CorporateActionType.DIVIDEND:
            proximity = _ONE - Decimal(abs(days)) / Decimal(window + 1)
            best_proximity = max(best_proximity, proximity)

    return -settings.k_corporate_action * best_proximity, requires_hold


def compute_funding_rate(
    inputs: FundingInputs,
    settings: FundingSettings,
    calculated_at: datetime,
    rate_id: str | None = None,
) -> FundingRate:
    """Pure funding-rate formula. Identical inputs give an identical rate."""
    if inputs.adjusted_spot_price <= 0:
        raise NoDataAvailable(f"{inputs.symbol}: non-positive adjusted spot price")

    premium = inputs.mark_price - inputs.adjusted_spot_price
    premium_percentage = premium / inputs.adjusted_spot_price * 100
    base_rate = _clamp(premium_percentage * settings.k_base, settings.base_cap)

    ca_adjustment, requires_hold = corporate_action_adjustment(
        inputs.corporate_actions, calculated_at.date(), settings
    )

    liquidity = min(max(inputs.liquidity_score, _ZERO), _ONE)
    liquidity_adjustment = (_ONE - liquidity) * settings.k_liquidity

    volatility_adjustment = max(
        _ZERO, (inputs.volatility - settings.baseline_volatility) * settings.k_volatility
    )

    rate = _clamp(
        base_rate + ca_adjustment + liquidity_adjustment + volatility_adjustment,
        settings.rate_cap,
    ).quantize(_RATE_QUANT)
    hourly_rate = (rate / HOURS_PER_YEAR).quantize(_HOURLY_QUANT, rounding=ROUND_DOWN)

    return FundingRate(
        id=rate_id or str(uuid.uuid4()),
        symbol=inputs.symbol,
        rate=rate,
        hourly_rate=hourly_rate,
        mark_price=inputs.mark_price,
        spot_price=inputs.spot_price,
        adjusted_spot_price=inputs.adjusted_spot_price,
        premium=premium,
        premium_percentage=premium_percentage.quantize(_RATE_QUANT),
        base_rate=base_rate.quantize(_RATE_QUANT),
        corporate_action_adjustment=ca_adjustment.quantize(_RATE_QUANT),
        liquidity_adjustment=liquidity_adjustment.quantize(_RATE_QUANT),
        volatility_adjustment=volatility_adjustment.quantize(_RATE_QUANT),
        calculated_at=calculated_at,
        valid_until=calculated_at + timedelta(minutes=settings.validity_minutes),
        volatility=inputs.volatility,
        liquidity_score=liquidity,
        requires_hold=requires_hold,
    )


class FundingRateEngine:
    """Computes, stores and serves funding rates per symbol.

    Args:
        price_service: Adjusted spot prices.
        mark_source: Mark price when the caller does not supply one.
        registry: Verified corporate actions.
        volatility_service: 30-day realized volatility.
        liquidity_service: Liquidity score.
        store: Append-only funding-rate rows.
        settings: Formula constants.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        price_service: EquityPriceService,
        mark_source: MarkPriceSource,
        registry: CorporateActionRegistry,
        volatility_service: VolatilityService,
        liquidity_service: LiquidityService,
        store: FundingRateStore,
        settings: FundingSettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._price_service = price_service
        self._mark_source = mark_source
        self._registry = registry
        self._volatility = volatility_service
        self._liquidity = liquidity_service
        self._store = store
        self._settings = settings
        self._clock = clock

    async def gather_inputs(self, symbol: str, mark_price: Decimal | None = None) -> FundingInputs:
        """Collect every formula input. Raises on missing spot or mark data."""
        spot = await self._price_service.get_adjusted_price(symbol)
        if not spot.ok or spot.value is None:
            raise NoDataAvailable(spot.message or f"{symbol}: no spot price")

        if mark_price is None:
            mark_price = await self._mark_source.get_mark_price(symbol)

        volatility = await self._volatility.get_volatility_30d(symbol)
        liquidity = await self._liquidity.get_liquidity_score(symbol)

        today = self._clock().date()
        earliest = today - timedelta(days=self._settings.corporate_action_lookback_days)
        latest = today + timedelta(days=self._settings.corporate_action_lookahead_days)
        actions = [
            a
            for a in await self._registry.get_verified_actions(symbol)
            if earliest <= a.effective_date <= latest
        ]

        return FundingInputs(
            symbol=symbol,
            mark_price=mark_price,
            spot_price=spot.value.raw_price,
            adjusted_spot_price=spot.value.adjusted_price,
            volatility=volatility if volatility is not None else self._settings.default_volatility,
            liquidity_score=liquidity,
            corporate_actions=actions,
        )

    async def calculate_funding_rate(
        self, symbol: str, mark_price: Decimal | None = None
    ) -> Result[FundingRate]:
        """Compute and append a new funding-rate row."""
        symbol = symbol.upper()
        if mark_price is not None and mark_price <= 0:
            return Result.fail(FailureKind.INVALID, "mark_price must be positive")

        try:
            inputs = await self.gather_inputs(symbol, mark_price)
            rate = compute_funding_rate(inputs, self._settings, self._clock())
        except (NoDataAvailable, ProviderError, CorporateActionDiscontinuity) as e:
            logger.warning("funding_rate_unavailable", symbol=symbol, error=str(e))
            return failure_from_exception(e)

        await self._store.insert(rate)
        logger.info(
            "funding_rate_calculated",
            symbol=symbol,
            rate=str(rate.rate),
            premium_pct=str(rate.premium_percentage),
            requires_hold=rate.requires_hold,
        )
        return Result.success(rate)

    async def get_current_funding_rate(self, symbol: str) -> Result[FundingRate]:
        """Newest non-expired row, recomputing when stale or missing."""
        symbol = symbol.upper()
        latest = await self._store.get_latest(symbol)
        if latest is not None and not latest.is_expired(self._clock()):
            return Result.success(latest)
        if latest is not None:
            logger.debug("stale_funding_rate", symbol=symbol, valid_until=latest.valid_until.isoformat())
        return await self.calculate_funding_rate(symbol)

    async def get_funding_rate_history(self, symbol: str, hours: int = 24) -> list[FundingRate]:
        """Rows from the last `hours`, newest first."""
        since = self._clock() - timedelta(hours=max(hours, 1))
        return await self._store.get_history(symbol.upper(), since)

    async def get_batch_funding_rates(self, symbols: list[str]) -> dict[str, Result[FundingRate]]:
        """Current rate per symbol; failures are reported in the map."""
        results = await asyncio.gather(*(self.get_current_funding_rate(s) for s in symbols))
        return dict(zip(symbols, results))

    async def get_funding_rate_factors(self, symbol: str) -> Result[FundingRateFactors]:
        current = await self.get_current_funding_rate(symbol)
        if not current.ok or current.value is None:
            return Result.fail(current.failure or FailureKind.NO_DATA, current.message)
        rate = current.value
        return Result.success(
            FundingRateFactors(
                symbol=rate.symbol,
                rate=rate.rate,
                base_rate=rate.base_rate,
                corporate_action_adjustment=rate.corporate_action_adjustment,
                liquidity_adjustment=rate.liquidity_adjustment,
                volatility_adjustment=rate.volatility_adjustment,
                premium_percentage=rate.premium_percentage,
                volatility=rate.volatility,
                liquidity_score=rate.liquidity_score,
                requires_hold=rate.requires_hold,
                calculated_at=rate.calculated_at,
            )
        )

    async def record_transaction_hash(self, rate_id: str, tx_hash: str) -> bool:
        return await self._store.set_transaction_hash(rate_id, tx_hash)
