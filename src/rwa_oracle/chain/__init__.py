"""On-chain publication of funding rates."""

from rwa_oracle.chain.client import ChainClient
from rwa_oracle.chain.evm import EvmFundingPublisher
from rwa_oracle.chain.factory import PublisherFactory
from rwa_oracle.chain.paper_client import PaperChainClient
from rwa_oracle.chain.publisher import FundingRatePublisher
from rwa_oracle.chain.solana import SolanaFundingPublisher

__all__ = [
    "ChainClient",
    "EvmFundingPublisher",
    "FundingRatePublisher",
    "PaperChainClient",
    "PublisherFactory",
    "SolanaFundingPublisher",
]
