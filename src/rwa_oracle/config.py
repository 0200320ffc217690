"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """External price and corporate-action vendor settings.

    Reliability weights are vendor-specific and fixed per deployment.
    A provider without an API key is skipped at startup.
    """

    model_config = SettingsConfigDict(env_prefix="PROVIDER_")

    iex_api_key: SecretStr = SecretStr("")
    iex_base_url: str = "https://cloud.iexapis.com/stable"
    iex_reliability: Decimal = Decimal("0.95")
    iex_enabled: bool = True

    polygon_api_key: SecretStr = SecretStr("")
    polygon_base_url: str = "https://api.polygon.io"
    polygon_reliability: Decimal = Decimal("0.90")
    polygon_enabled: bool = True

    alpha_vantage_api_key: SecretStr = SecretStr("")
    alpha_vantage_base_url: str = "https://www.alphavantage.co/query"
    alpha_vantage_reliability: Decimal = Decimal("0.75")
    alpha_vantage_enabled: bool = True

    request_timeout_seconds: float = 5.0

    @field_validator("iex_reliability", "polygon_reliability", "alpha_vantage_reliability")
    @classmethod
    def _reliability_in_unit_range(cls, value: Decimal) -> Decimal:
        if value < 0 or value > 1:
            raise ValueError("reliability must be within [0, 1]")
        return value


class PriceSettings(BaseSettings):
    """Price aggregation and caching parameters."""

    model_config = SettingsConfigDict(env_prefix="PRICE_")

    cache_ttl_seconds: float = 60.0
    history_cache_ttl_seconds: float = 86400.0
    agreement_tolerance: Decimal = Decimal("0.01")  # within 1% of consensus
    recency_grace_seconds: float = 345600.0  # 4 days covers weekends and holidays
    recency_half_life_seconds: float = 86400.0
    outlier_std_devs: Decimal = Decimal("3")
    stale_confidence_multiplier: Decimal = Decimal("0.5")


class CorporateActionSettings(BaseSettings):
    """Corporate-action fetching and query parameters."""

    model_config = SettingsConfigDict(env_prefix="CORPORATE_ACTION_")

    lookback_days: int = 730  # 2 years of history on refresh
    default_days_ahead: int = 30
    max_days_ahead: int = 90
    refresh_interval_minutes: int = 360
    cache_ttl_seconds: float = 300.0


class FundingSettings(BaseSettings):
    """Funding-rate formula constants.

    Rates are annualized percentages. hourly_rate = rate / 8760.
    """

    model_config = SettingsConfigDict(env_prefix="FUNDING_")

    k_base: Decimal = Decimal("0.1")
    base_cap: Decimal = Decimal("50")
    rate_cap: Decimal = Decimal("100")
    k_corporate_action: Decimal = Decimal("1.0")
    corporate_action_lookback_days: int = 7
    corporate_action_lookahead_days: int = 7
    k_liquidity: Decimal = Decimal("0.3")
    baseline_volatility: Decimal = Decimal("0.2")
    k_volatility: Decimal = Decimal("0.2")
    default_liquidity_score: Decimal = Decimal("0.5")
    default_volatility: Decimal = Decimal("0.25")
    validity_minutes: int = 60


class RiskSettings(BaseSettings):
    """Risk window, assessment and recommendation parameters."""

    model_config = SettingsConfigDict(env_prefix="RISK_")

    # Impact -> level bands
    critical_impact: Decimal = Decimal("0.75")
    high_impact: Decimal = Decimal("0.5")
    medium_impact: Decimal = Decimal("0.25")

    # Factor thresholds
    corporate_action_critical_days: int = 3
    corporate_action_high_days: int = 7
    volatility_threshold: Decimal = Decimal("0.4")
    liquidity_threshold: Decimal = Decimal("0.3")
    price_gap_threshold: Decimal = Decimal("0.10")  # 10% single-day move
    window_days: int = 7

    # Leverage
    baseline_leverage: Decimal = Decimal("5")
    min_leverage: Decimal = Decimal("1")
    max_leverage: Decimal = Decimal("5")
    leverage_score_scale: Decimal = Decimal("25")
    hysteresis: Decimal = Decimal("0.1")  # 10% band around targets
    recommendation_validity_hours: int = 24
    update_interval_minutes: int = 60


class MarkPriceSettings(BaseSettings):
    """Mark price source for the funding-rate premium."""

    model_config = SettingsConfigDict(env_prefix="MARK_PRICE_")

    source: Literal["synthetic", "ccxt"] = "synthetic"
    exchange_id: str = "bybit"
    symbol_template: str = "{symbol}/USDT:USDT"


class PublisherSettings(BaseSettings):
    """On-chain publication worker settings."""

    model_config = SettingsConfigDict(env_prefix="PUBLISHER_")

    tracked_symbols: list[str] = ["AAPL", "MSFT", "GOOGL"]
    interval_minutes: int = 60
    publish_to_all_chains: bool = False
    enabled_providers: list[str] = ["solana"]
    primary_provider: str = "solana"
    max_concurrency: int = 8
    stop_grace_seconds: float = 30.0
    solana_program_id: str = "RwaFundingOracle1111111111111111111111111111"
    evm_contract_address: str = "0x0000000000000000000000000000000000000000"


class DatabaseSettings(BaseSettings):
    """SQLite persistence settings."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    path: str = "data/oracle.db"


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    providers: ProviderSettings = ProviderSettings()
    price: PriceSettings = PriceSettings()
    corporate_actions: CorporateActionSettings = CorporateActionSettings()
    funding: FundingSettings = FundingSettings()
    risk: RiskSettings = RiskSettings()
    mark_price: MarkPriceSettings = MarkPriceSettings()
    publisher: PublisherSettings = PublisherSettings()
    database: DatabaseSettings = DatabaseSettings()
    api: ApiSettings = ApiSettings()
