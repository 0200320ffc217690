"""Shared aiohttp plumbing for REST-based vendors.

Maps transport outcomes to typed provider failures:
HTTP 429 -> RateLimited, HTTP 404 -> SymbolNotFound,
any other error status, timeout or connection error -> SourceUnavailable.
"""

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp

from rwa_oracle.exceptions import RateLimited, SourceUnavailable, SymbolNotFound
from rwa_oracle.logging import get_logger
from rwa_oracle.providers.base import MarketDataProvider

logger = get_logger(__name__)

_HTTP_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "rwa-funding-oracle/0.1",
}


class HttpProvider(MarketDataProvider):
    """MarketDataProvider backed by a shared aiohttp session."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        reliability: Decimal,
        timeout_seconds: float = 5.0,
    ) -> None:
        super().__init__(reliability)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
                headers=_HTTP_HEADERS,
            )
            logger.info("provider_connected", provider=self.name)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
            logger.info("provider_closed", provider=self.name)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET base_url + path and decode JSON, raising typed failures."""
        if self._session is None:
            await self.connect()
        assert self._session is not None

        url = path if path.startswith("http") else f"{self._base_url}{path}"
        try:
            async with self._session.get(url, params=params) as resp:
                if resp.status == 429:
                    raise RateLimited(self.name, "HTTP 429")
                if resp.status == 404:
                    raise SymbolNotFound(self.name, f"HTTP 404 for {path}")
                if resp.status >= 400:
                    raise SourceUnavailable(self.name, f"HTTP {resp.status}")
                return await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise SourceUnavailable(self.name, "request timed out") from None
        except aiohttp.ClientError as e:
            raise SourceUnavailable(self.name, str(e)) from e
        except ValueError as e:
            raise SourceUnavailable(self.name, f"invalid JSON: {e}") from e

    def _decimal(self, value: Any, field_name: str) -> Decimal:
        """Parse a payload number, treating garbage as an unusable payload."""
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise SourceUnavailable(self.name, f"unparseable {field_name}: {value!r}") from None
        if not result.is_finite():
            raise SourceUnavailable(self.name, f"non-finite {field_name}")
        return result
