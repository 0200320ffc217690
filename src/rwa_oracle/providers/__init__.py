"""External equity data vendors -- prices and corporate actions over REST."""

from rwa_oracle.providers.alpha_vantage import AlphaVantageProvider
from rwa_oracle.providers.base import MarketDataProvider
from rwa_oracle.providers.factory import build_providers
from rwa_oracle.providers.iex_cloud import IexCloudProvider
from rwa_oracle.providers.polygon import PolygonProvider

__all__ = [
    "AlphaVantageProvider",
    "IexCloudProvider",
    "MarketDataProvider",
    "PolygonProvider",
    "build_providers",
]
