"""Read-through in-memory cache with a fixed time-to-live.

Fronts price and corporate-action lookups to bound provider call volume.
Entries are (value, stored_at) tuples replaced whole on refresh, never
mutated in place, so concurrent coroutines need no lock: a reader sees
either the old tuple or the new one.
"""

import time
from collections.abc import Awaitable, Callable
from typing import Generic, Hashable, TypeVar

from rwa_oracle.logging import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Keyed cache whose entries expire after ttl_seconds."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[V, float]] = {}

    def get(self, key: Hashable) -> V | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at > self._ttl:
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries = {}

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value or await loader() and cache its result.

        Exceptions from the loader propagate and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        self.set(key, value)
        return value

    def __len__(self) -> int:
        return len(self._entries)
