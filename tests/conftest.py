"""Shared test fixtures for the RWA funding oracle."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from rwa_oracle.config import (
    AppSettings,
    CorporateActionSettings,
    FundingSettings,
    PriceSettings,
    ProviderSettings,
    PublisherSettings,
    RiskSettings,
)
from rwa_oracle.data import OracleDatabase
from rwa_oracle.funding.engine import compute_funding_rate
from rwa_oracle.models import (
    CorporateAction,
    CorporateActionType,
    FundingInputs,
    FundingRate,
    ProviderQuote,
)
from rwa_oracle.providers.base import MarketDataProvider


FIXED_NOW = datetime(2024, 6, 14, 15, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


class StubProvider(MarketDataProvider):
    """In-memory provider: returns preset quotes/actions or raises a preset error."""

    def __init__(
        self,
        name: str,
        reliability: str,
        price: str | None = None,
        as_of: datetime = FIXED_NOW,
        error: Exception | None = None,
        actions: list[CorporateAction] | None = None,
    ) -> None:
        super().__init__(Decimal(reliability))
        self.name = name
        self._price = price
        self._as_of = as_of
        self._error = error
        self._actions = actions or []
        self.calls = 0

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def fetch_price(self, symbol: str) -> ProviderQuote:
        self.calls += 1
        if self._error is not None:
            raise self._error
        assert self._price is not None
        return ProviderQuote(self.name, symbol, Decimal(self._price), self._as_of)

    async def fetch_price_at_date(self, symbol: str, day: date) -> ProviderQuote:
        return await self.fetch_price(symbol)

    async def fetch_splits(self, symbol: str) -> list[CorporateAction]:
        if self._error is not None:
            raise self._error
        return [a for a in self._actions if a.action_type == CorporateActionType.SPLIT]

    async def fetch_dividends(self, symbol: str) -> list[CorporateAction]:
        if self._error is not None:
            raise self._error
        return [a for a in self._actions if a.action_type == CorporateActionType.DIVIDEND]


def make_action(
    action_type: CorporateActionType = CorporateActionType.SPLIT,
    effective: date = date(2024, 6, 12),
    symbol: str = "AAPL",
    source: str = "polygon",
    verified: bool = False,
    action_id: str | None = None,
    **payload,
) -> CorporateAction:
    """Build a CorporateAction with a sensible default payload for its type."""
    if not payload:
        if action_type == CorporateActionType.SPLIT:
            payload = {"split_ratio": Decimal("2")}
        elif action_type == CorporateActionType.DIVIDEND:
            payload = {"dividend_amount": Decimal("0.25"), "dividend_currency": "USD"}
        else:
            payload = {"acquiring_symbol": "NEWCO", "exchange_ratio": Decimal("1.5")}
    return CorporateAction(
        id=action_id or f"{symbol}-{action_type.value}-{effective.isoformat()}-{source}",
        symbol=symbol,
        action_type=action_type,
        ex_date=effective,
        effective_date=effective,
        data_source=source,
        sources=[source],
        is_verified=verified,
        **payload,
    )


def make_rate(symbol: str = "AAPL", mark: str = "105", spot: str = "100") -> FundingRate:
    """A funding rate computed at FIXED_NOW from simple inputs."""
    inputs = FundingInputs(
        symbol=symbol,
        mark_price=Decimal(mark),
        spot_price=Decimal(spot),
        adjusted_spot_price=Decimal(spot),
        volatility=Decimal("0.2"),
        liquidity_score=Decimal("1"),
    )
    return compute_funding_rate(inputs, FundingSettings(), FIXED_NOW)


@pytest.fixture
def mock_settings() -> AppSettings:
    """AppSettings with test defaults (dummy API keys, in-repo database path)."""
    return AppSettings(
        log_level="DEBUG",
        providers=ProviderSettings(
            iex_api_key="test-iex-key",  # type: ignore[arg-type]
            polygon_api_key="test-polygon-key",  # type: ignore[arg-type]
            alpha_vantage_api_key="",  # type: ignore[arg-type]
        ),
        publisher=PublisherSettings(
            tracked_symbols=["AAPL", "MSFT"],
            enabled_providers=["solana", "ethereum"],
            primary_provider="solana",
        ),
    )


@pytest.fixture
def price_settings() -> PriceSettings:
    return PriceSettings()


@pytest.fixture
def ca_settings() -> CorporateActionSettings:
    return CorporateActionSettings()


@pytest.fixture
def funding_settings() -> FundingSettings:
    return FundingSettings()


@pytest.fixture
def risk_settings() -> RiskSettings:
    return RiskSettings()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Connected OracleDatabase on a temp file."""
    db = OracleDatabase(str(tmp_path / "oracle.db"))
    await db.connect()
    yield db
    await db.close()
