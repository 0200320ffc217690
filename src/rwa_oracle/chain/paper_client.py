"""In-memory chain client with simulated transactions.

Used when no live chain client is configured and in tests. Mirrors the
account semantics the publishers rely on: creating an existing account
fails, writing a missing account fails.
"""

import hashlib
from typing import Any
from uuid import uuid4

from rwa_oracle.chain.client import ChainClient
from rwa_oracle.exceptions import ChainError
from rwa_oracle.logging import get_logger

logger = get_logger(__name__)


class PaperChainClient(ChainClient):
    """Simulated ledger for one network.

    Args:
        network: Label used in logs and tx hashes.
        reject_writes: When True every create/write is rejected.
    """

    def __init__(self, network: str, reject_writes: bool = False) -> None:
        self._network = network
        self.reject_writes = reject_writes
        self._accounts: dict[str, dict[str, Any]] = {}
        self._transactions: dict[str, str] = {}
        self.accounts_created = 0

    def _submit(self, address: str) -> str:
        if self.reject_writes:
            raise ChainError(f"{self._network}: transaction rejected")
        tx_hash = hashlib.sha256(f"{self._network}:{address}:{uuid4().hex}".encode()).hexdigest()
        self._transactions[tx_hash] = address
        return tx_hash

    async def get_account(self, address: str) -> dict[str, Any] | None:
        account = self._accounts.get(address)
        return dict(account) if account is not None else None

    async def create_account(self, address: str, data: dict[str, Any]) -> str:
        if address in self._accounts:
            raise ChainError(f"{self._network}: account {address} already exists")
        tx_hash = self._submit(address)
        self._accounts[address] = dict(data)
        self.accounts_created += 1
        logger.debug("paper_account_created", network=self._network, address=address)
        return tx_hash

    async def write_account(self, address: str, data: dict[str, Any]) -> str:
        if address not in self._accounts:
            raise ChainError(f"{self._network}: account {address} not initialized")
        tx_hash = self._submit(address)
        self._accounts[address] = dict(data)
        return tx_hash

    async def get_confirmations(self, tx_hash: str) -> int:
        return 1 if tx_hash in self._transactions else 0
