"""Abstract chain client.

The oracle treats each chain as a key/value account store: it never builds,
signs or encodes transactions itself. A concrete client owns wallet keys,
instruction encoding and RPC transport for its chain.
"""

from abc import ABC, abstractmethod
from typing import Any


class ChainClient(ABC):
    """Abstract base class for blockchain RPC clients."""

    async def connect(self) -> None:
        """Open RPC connections (no-op by default)."""

    async def close(self) -> None:
        """Release RPC connections (no-op by default)."""

    @abstractmethod
    async def get_account(self, address: str) -> dict[str, Any] | None:
        """Decoded account/slot data, or None if it does not exist."""
        ...

    @abstractmethod
    async def create_account(self, address: str, data: dict[str, Any]) -> str:
        """Create an account with initial data. Returns the transaction hash.

        Raises ChainError if the account already exists or the chain rejects it.
        """
        ...

    @abstractmethod
    async def write_account(self, address: str, data: dict[str, Any]) -> str:
        """Overwrite an existing account's data. Returns the transaction hash."""
        ...

    @abstractmethod
    async def get_confirmations(self, tx_hash: str) -> int:
        """Confirmation count for a submitted transaction."""
        ...
