"""Tests for PublisherFactory configuration and lookup."""

import pytest

from rwa_oracle.chain import (
    EvmFundingPublisher,
    PaperChainClient,
    PublisherFactory,
    SolanaFundingPublisher,
)
from rwa_oracle.config import PublisherSettings
from rwa_oracle.exceptions import ConfigurationError, PublisherNotConfigured
from rwa_oracle.models import BlockchainProviderType


class TestFromSettings:
    def test_builds_one_publisher_per_enabled_chain(self) -> None:
        factory = PublisherFactory.from_settings(
            PublisherSettings(enabled_providers=["ethereum", "solana"], primary_provider="solana")
        )
        assert factory.primary_provider == BlockchainProviderType.SOLANA
        publishers = factory.get_all_publishers()
        assert [p.provider_type for p in publishers] == [
            BlockchainProviderType.SOLANA,
            BlockchainProviderType.ETHEREUM,
        ]
        assert isinstance(publishers[0], SolanaFundingPublisher)
        assert isinstance(publishers[1], EvmFundingPublisher)

    def test_primary_not_enabled_falls_back_to_first(self) -> None:
        factory = PublisherFactory.from_settings(
            PublisherSettings(enabled_providers=["arbitrum", "base"], primary_provider="solana")
        )
        assert factory.primary_provider == BlockchainProviderType.ARBITRUM
        assert factory.get_primary_publisher().provider_type == BlockchainProviderType.ARBITRUM

    def test_unknown_provider_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            PublisherFactory.from_settings(PublisherSettings(enabled_providers=["dogechain"]))

    def test_empty_provider_list_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            PublisherFactory.from_settings(PublisherSettings(enabled_providers=[]))

    def test_names_are_case_insensitive_and_deduplicated(self) -> None:
        factory = PublisherFactory.from_settings(
            PublisherSettings(enabled_providers=["Solana", " solana "], primary_provider="SOLANA")
        )
        assert len(factory.get_all_publishers()) == 1


class TestLookup:
    def test_unconfigured_chain_raises(self) -> None:
        factory = PublisherFactory.from_settings(PublisherSettings(enabled_providers=["solana"]))
        assert not factory.is_provider_available(BlockchainProviderType.POLYGON)
        with pytest.raises(PublisherNotConfigured):
            factory.get_publisher(BlockchainProviderType.POLYGON)

    def test_constructor_requires_primary_in_publishers(self) -> None:
        solana = SolanaFundingPublisher(PaperChainClient("solana"), "prog")
        with pytest.raises(ConfigurationError):
            PublisherFactory({BlockchainProviderType.SOLANA: solana}, BlockchainProviderType.BASE)
        with pytest.raises(ConfigurationError):
            PublisherFactory({}, BlockchainProviderType.SOLANA)

    @pytest.mark.asyncio
    async def test_connect_and_close_reach_every_client(self) -> None:
        factory = PublisherFactory.from_settings(
            PublisherSettings(enabled_providers=["solana", "polygon"])
        )
        await factory.connect()
        await factory.close()
        assert factory.get_publisher(BlockchainProviderType.POLYGON).client is not None
