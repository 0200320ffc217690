"""Publisher registry keyed by chain."""

from rwa_oracle.chain.evm import EvmFundingPublisher
from rwa_oracle.chain.paper_client import PaperChainClient
from rwa_oracle.chain.publisher import FundingRatePublisher
from rwa_oracle.chain.solana import SolanaFundingPublisher
from rwa_oracle.config import PublisherSettings
from rwa_oracle.exceptions import ConfigurationError, PublisherNotConfigured
from rwa_oracle.logging import get_logger
from rwa_oracle.models import BlockchainProviderType

logger = get_logger(__name__)


def _parse_provider(name: str) -> BlockchainProviderType:
    try:
        return BlockchainProviderType(name.strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown blockchain provider: {name}") from None


class PublisherFactory:
    """Holds one publisher per enabled chain plus a designated primary."""

    def __init__(
        self,
        publishers: dict[BlockchainProviderType, FundingRatePublisher],
        primary: BlockchainProviderType,
    ) -> None:
        if not publishers:
            raise ConfigurationError("At least one blockchain provider must be enabled")
        if primary not in publishers:
            raise ConfigurationError(f"Primary provider {primary.value} is not enabled")
        self._publishers = dict(publishers)
        self._primary = primary

    @classmethod
    def from_settings(cls, settings: PublisherSettings) -> "PublisherFactory":
        """Build paper-backed publishers for every enabled chain.

        An unknown provider name is a configuration error. A primary that is
        not enabled falls back to the first enabled chain.
        """
        enabled: list[BlockchainProviderType] = []
        for name in settings.enabled_providers:
            provider = _parse_provider(name)
            if provider not in enabled:
                enabled.append(provider)
        if not enabled:
            raise ConfigurationError("At least one blockchain provider must be enabled")

        primary = _parse_provider(settings.primary_provider)
        if primary not in enabled:
            logger.warning(
                "primary_provider_not_enabled",
                primary=primary.value,
                fallback=enabled[0].value,
            )
            primary = enabled[0]

        publishers: dict[BlockchainProviderType, FundingRatePublisher] = {}
        for provider in enabled:
            client = PaperChainClient(network=provider.value)
            if provider == BlockchainProviderType.SOLANA:
                publishers[provider] = SolanaFundingPublisher(client, settings.solana_program_id)
            else:
                publishers[provider] = EvmFundingPublisher(
                    client, provider, settings.evm_contract_address
                )

        logger.info(
            "publishers_configured",
            providers=[p.value for p in publishers],
            primary=primary.value,
        )
        return cls(publishers, primary)

    @property
    def primary_provider(self) -> BlockchainProviderType:
        return self._primary

    def get_publisher(self, provider: BlockchainProviderType) -> FundingRatePublisher:
        publisher = self._publishers.get(provider)
        if publisher is None:
            raise PublisherNotConfigured(f"No publisher configured for {provider.value}")
        return publisher

    def get_primary_publisher(self) -> FundingRatePublisher:
        return self._publishers[self._primary]

    def get_all_publishers(self) -> list[FundingRatePublisher]:
        """All publishers, primary first."""
        primary = self._publishers[self._primary]
        return [primary] + [p for t, p in self._publishers.items() if t != self._primary]

    def is_provider_available(self, provider: BlockchainProviderType) -> bool:
        return provider in self._publishers

    async def connect(self) -> None:
        for publisher in self._publishers.values():
            await publisher.client.connect()

    async def close(self) -> None:
        for publisher in self._publishers.values():
            await publisher.client.close()
