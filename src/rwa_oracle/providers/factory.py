"""Build the ordered provider list from settings.

Adding a vendor means adding one MarketDataProvider subclass and one entry
here; the aggregator and registry are untouched.
"""

from rwa_oracle.config import ProviderSettings
from rwa_oracle.logging import get_logger
from rwa_oracle.providers.alpha_vantage import AlphaVantageProvider
from rwa_oracle.providers.base import MarketDataProvider
from rwa_oracle.providers.iex_cloud import IexCloudProvider
from rwa_oracle.providers.polygon import PolygonProvider

logger = get_logger(__name__)


def build_providers(settings: ProviderSettings) -> list[MarketDataProvider]:
    """Instantiate every enabled vendor that has an API key, most reliable first."""
    candidates = [
        (
            IexCloudProvider,
            settings.iex_enabled,
            settings.iex_api_key.get_secret_value(),
            settings.iex_base_url,
            settings.iex_reliability,
        ),
        (
            PolygonProvider,
            settings.polygon_enabled,
            settings.polygon_api_key.get_secret_value(),
            settings.polygon_base_url,
            settings.polygon_reliability,
        ),
        (
            AlphaVantageProvider,
            settings.alpha_vantage_enabled,
            settings.alpha_vantage_api_key.get_secret_value(),
            settings.alpha_vantage_base_url,
            settings.alpha_vantage_reliability,
        ),
    ]

    providers: list[MarketDataProvider] = []
    for cls, enabled, api_key, base_url, reliability in candidates:
        if not enabled:
            continue
        if not api_key:
            logger.warning("provider_skipped_no_api_key", provider=cls.name)
            continue
        providers.append(
            cls(
                base_url=base_url,
                api_key=api_key,
                reliability=reliability,
                timeout_seconds=settings.request_timeout_seconds,
            )
        )

    providers.sort(key=lambda p: p.reliability, reverse=True)
    logger.info("providers_configured", providers=[p.name for p in providers])
    return providers
