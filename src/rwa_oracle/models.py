"""Shared data models for the RWA funding oracle.

CRITICAL: All prices, rates and ratios use Decimal. Never use float for money.
All datetimes are timezone-aware UTC.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, TypeVar

from rwa_oracle.exceptions import (
    CorporateActionDiscontinuity,
    DuplicateCorporateAction,
    InvalidCorporateAction,
    NoDataAvailable,
    ProviderError,
    PublishFailed,
    RateLimited,
    SourceUnavailable,
    SymbolNotFound,
)

T = TypeVar("T")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Typed results
# ---------------------------------------------------------------------------


class FailureKind(str, Enum):
    """Expected failure categories returned (not raised) by services."""

    NO_DATA = "no_data"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"
    DISCONTINUITY = "discontinuity"
    INVALID = "invalid"
    CONFLICT = "conflict"
    PUBLISH_FAILED = "publish_failed"


@dataclass
class Result(Generic[T]):
    """Either a value or a typed failure with a reason."""

    value: T | None = None
    failure: FailureKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, message: str = "") -> "Result[T]":
        return cls(failure=kind, message=message)


_FAILURE_KINDS: list[tuple[type[Exception], FailureKind]] = [
    (RateLimited, FailureKind.RATE_LIMITED),
    (SymbolNotFound, FailureKind.NOT_FOUND),
    (SourceUnavailable, FailureKind.UNAVAILABLE),
    (NoDataAvailable, FailureKind.NO_DATA),
    (CorporateActionDiscontinuity, FailureKind.DISCONTINUITY),
    (InvalidCorporateAction, FailureKind.INVALID),
    (DuplicateCorporateAction, FailureKind.CONFLICT),
    (PublishFailed, FailureKind.PUBLISH_FAILED),
    (ProviderError, FailureKind.UNAVAILABLE),
]


def failure_from_exception(exc: Exception) -> Result[Any]:
    """Map an expected oracle exception to a failed Result.

    Raises the exception again if it is not an expected failure type.
    """
    for exc_type, kind in _FAILURE_KINDS:
        if isinstance(exc, exc_type):
            return Result.fail(kind, str(exc))
    raise exc


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


@dataclass
class ProviderQuote:
    """One provider's answer to a price request."""

    provider: str
    symbol: str
    price: Decimal
    as_of: datetime
    confidence: Decimal = Decimal("1")


@dataclass
class SourceBreakdown:
    """How a single provider contributed to an aggregated price."""

    provider: str
    price: Decimal | None
    reliability: Decimal
    weight: Decimal = Decimal("0")
    included: bool = False
    reason: str = ""


@dataclass
class EquityPrice:
    """Point-in-time price observation for an equity."""

    symbol: str
    raw_price: Decimal
    adjusted_price: Decimal
    confidence: Decimal
    price_date: datetime
    source: str = "aggregate"
    source_breakdown: list[SourceBreakdown] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Corporate actions
# ---------------------------------------------------------------------------


class CorporateActionType(str, Enum):
    """Structural events that break naive price continuity."""

    SPLIT = "split"
    DIVIDEND = "dividend"
    MERGER = "merger"
    SPIN_OFF = "spin_off"


def _norm(value: Decimal | None) -> str:
    if value is None:
        return ""
    return format(value.quantize(Decimal("0.000001")).normalize(), "f")


@dataclass
class CorporateAction:
    """A declared corporate action for a symbol.

    split_ratio is new shares per old share (2 for a 2-for-1 split).
    """

    id: str
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
    is_verified: bool = False
    sources: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def match_key(self) -> str:
        """Payload identity used to decide whether two records are the same event."""
        if self.action_type == CorporateActionType.SPLIT and self.split_ratio is not None:
            return _norm(self.split_ratio)
        if self.action_type == CorporateActionType.DIVIDEND and self.dividend_amount is not None:
            return _norm(self.dividend_amount)
        if self.acquiring_symbol and self.exchange_ratio is not None:
            return f"{self.acquiring_symbol.upper()}:{_norm(self.exchange_ratio)}"
        return self.external_id or ""

    @property
    def is_discontinuity(self) -> bool:
        """Mergers and spin-offs replace the series rather than scale it."""
        return self.action_type in (CorporateActionType.MERGER, CorporateActionType.SPIN_OFF)


@dataclass
class CorporateActionRequest:
    """Manual (administrator) corporate-action entry."""

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


@dataclass
class PriceAdjustment:
    """Audit entry describing one corporate action's effect on prices."""

    corporate_action: CorporateAction
    price_before: Decimal | None
    price_after: Decimal | None
    adjustment_factor: Decimal
    applied_at: date


# ---------------------------------------------------------------------------
# Funding rates
# ---------------------------------------------------------------------------


@dataclass
class FundingInputs:
    """Everything the funding-rate formula depends on."""

    symbol: str
    mark_price: Decimal
    spot_price: Decimal
    adjusted_spot_price: Decimal
    volatility: Decimal
    liquidity_score: Decimal
    corporate_actions: list[CorporateAction] = field(default_factory=list)


@dataclass
class FundingRate:
    """A derived funding rate. Rates are annualized percentages."""

    id: str
    symbol: str
    rate: Decimal
    hourly_rate: Decimal
    mark_price: Decimal
    spot_price: Decimal
    adjusted_spot_price: Decimal
    premium: Decimal
    premium_percentage: Decimal
    base_rate: Decimal
    corporate_action_adjustment: Decimal
    liquidity_adjustment: Decimal
    volatility_adjustment: Decimal
    calculated_at: datetime
    valid_until: datetime
    volatility: Decimal = Decimal("0")
    liquidity_score: Decimal = Decimal("0")
    requires_hold: bool = False
    on_chain_transaction_hash: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until < now


@dataclass
class FundingRateFactors:
    """Breakdown of how a funding rate was assembled."""

    symbol: str
    rate: Decimal
    base_rate: Decimal
    corporate_action_adjustment: Decimal
    liquidity_adjustment: Decimal
    volatility_adjustment: Decimal
    premium_percentage: Decimal
    volatility: Decimal
    liquidity_score: Decimal
    requires_hold: bool
    calculated_at: datetime


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------


class RiskLevel(str, Enum):
    """Risk severity, ordered LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class RiskFactorType(str, Enum):
    """Contributors to a risk window."""

    CORPORATE_ACTION_PROXIMITY = "corporate_action_proximity"
    HIGH_VOLATILITY = "high_volatility"
    LOW_LIQUIDITY = "low_liquidity"
    PRICE_GAP = "price_gap"


@dataclass
class RiskFactor:
    """One contributor to a RiskWindow. impact is within [0, 1]."""

    factor_type: RiskFactorType
    description: str
    impact: Decimal
    effective_date: datetime
    details: dict[str, Any] | None = None
    risk_window_id: int | None = None

    @property
    def is_measured(self) -> bool:
        """True for factors re-measured on every identification (not tied to an action)."""
        return self.factor_type is not RiskFactorType.CORPORATE_ACTION_PROXIMITY

    @property
    def key(self) -> tuple[str, str]:
        """Merge identity: one factor per measured type, one per corporate action."""
        if self.is_measured:
            return (self.factor_type.value, "")
        action_id = (self.details or {}).get("action_id")
        return (self.factor_type.value, str(action_id) if action_id else self.description)


@dataclass
class RiskWindow:
    """A bounded elevated-risk interval for a symbol."""

    symbol: str
    level: RiskLevel
    start_date: datetime
    end_date: datetime
    factors: list[RiskFactor] = field(default_factory=list)
    id: int | None = None
    created_at: datetime = field(default_factory=utcnow)

    def is_active(self, at: datetime) -> bool:
        return self.start_date <= at <= self.end_date

    def overlaps(self, other: "RiskWindow") -> bool:
        return self.start_date <= other.end_date and other.start_date <= self.end_date

    @property
    def requires_hold(self) -> bool:
        return any(
            f.factor_type == RiskFactorType.CORPORATE_ACTION_PROXIMITY
            and (f.details or {}).get("discontinuity")
            for f in self.factors
        )


class RiskAction(str, Enum):
    """Recommended action for a leveraged position."""

    DELEVERAGE = "deleverage"
    RETURN_TO_BASELINE = "return_to_baseline"
    HOLD = "hold"


@dataclass
class PositionInfo:
    """Caller-supplied leveraged position."""

    leverage: Decimal
    position_id: str | None = None


@dataclass
class RiskAssessment:
    """Combined view of a symbol's current risk."""

    symbol: str
    risk_level: RiskLevel
    risk_score: Decimal
    recommended_leverage: Decimal
    assessed_at: datetime
    current_leverage: Decimal | None = None
    position_id: str | None = None
    active_window: RiskWindow | None = None
    funding_rate: Decimal | None = None
    factors: list[RiskFactor] = field(default_factory=list)


@dataclass
class RiskRecommendation:
    """Actionable leverage recommendation."""

    id: str
    symbol: str
    action: RiskAction
    current_leverage: Decimal
    target_leverage: Decimal
    reason: str
    priority: RiskLevel
    recommended_by: datetime
    position_id: str | None = None
    reduction_percentage: Decimal | None = None
    increase_percentage: Decimal | None = None
    valid_until: datetime | None = None
    acknowledged: bool = False
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None

    def is_valid(self, now: datetime) -> bool:
        return self.valid_until is None or self.valid_until >= now


# ---------------------------------------------------------------------------
# On-chain publication
# ---------------------------------------------------------------------------


class BlockchainProviderType(str, Enum):
    """Supported publication chains."""

    SOLANA = "solana"
    ETHEREUM = "ethereum"
    ARBITRUM = "arbitrum"
    POLYGON = "polygon"
    AVALANCHE = "avalanche"
    BASE = "base"
    OPTIMISM = "optimism"


@dataclass
class OnChainFundingRate:
    """Funding rate as stored on a chain."""

    symbol: str
    provider_type: BlockchainProviderType
    rate: Decimal
    hourly_rate: Decimal
    mark_price: Decimal
    spot_price: Decimal
    premium: Decimal
    last_updated: datetime
    valid_until: datetime
    account_address: str
    transaction_hash: str | None = None
    confirmations: int = 0


@dataclass
class OnChainPublishResult:
    """Outcome of one publish attempt on one chain."""

    success: bool
    provider_type: BlockchainProviderType
    published_at: datetime
    transaction_hash: str | None = None
    account_address: str | None = None
    error_message: str | None = None
    confirmations: int = 0
