"""Polygon.io client.

Prices come from the daily aggregates endpoints (unadjusted, so the
oracle applies its own corporate-action adjustment). Corporate actions
come from the v3 reference endpoints.
"""

import uuid
from datetime import date, datetime, timezone

from rwa_oracle.exceptions import SymbolNotFound
from rwa_oracle.models import CorporateAction, CorporateActionType, ProviderQuote
from rwa_oracle.providers.http import HttpProvider


class PolygonProvider(HttpProvider):
    """Polygon.io REST client."""

    name = "polygon"

    async def fetch_price(self, symbol: str) -> ProviderQuote:
        payload = await self._get_json(
            f"/v2/aggs/ticker/{symbol}/prev",
            params={"adjusted": "false", "apiKey": self._api_key},
        )
        return self._quote_from_aggs(symbol, payload)

    async def fetch_price_at_date(self, symbol: str, day: date) -> ProviderQuote:
        iso = day.isoformat()
        payload = await self._get_json(
            f"/v2/aggs/ticker/{symbol}/range/1/day/{iso}/{iso}",
            params={"adjusted": "false", "apiKey": self._api_key},
        )
        return self._quote_from_aggs(symbol, payload)

    def _quote_from_aggs(self, symbol: str, payload: dict) -> ProviderQuote:
        results = payload.get("results") or []
        if not results:
            raise SymbolNotFound(self.name, f"no aggregates for {symbol}")
        bar = results[-1]
        return ProviderQuote(
            provider=self.name,
            symbol=symbol,
            price=self._decimal(bar.get("c"), "close"),
            as_of=datetime.fromtimestamp(int(bar["t"]) / 1000, tz=timezone.utc),
        )

    async def fetch_splits(self, symbol: str) -> list[CorporateAction]:
        payload = await self._get_json(
            "/v3/reference/splits",
            params={"ticker": symbol, "limit": 1000, "apiKey": self._api_key},
        )
        actions = []
        for item in payload.get("results") or []:
            split_from = self._decimal(item.get("split_from"), "split_from")
            split_to = self._decimal(item.get("split_to"), "split_to")
            if split_from <= 0 or split_to <= 0:
                continue
            effective = date.fromisoformat(item["execution_date"])
            actions.append(
                CorporateAction(
                    id=str(uuid.uuid4()),
                    symbol=symbol,
                    action_type=CorporateActionType.SPLIT,
                    ex_date=effective,
                    effective_date=effective,
                    split_ratio=split_to / split_from,
                    data_source=self.name,
                    external_id=item.get("id"),
                    sources=[self.name],
                )
            )
        return actions

    async def fetch_dividends(self, symbol: str) -> list[CorporateAction]:
        payload = await self._get_json(
            "/v3/reference/dividends",
            params={"ticker": symbol, "limit": 1000, "apiKey": self._api_key},
        )
        actions = []
        for item in payload.get("results") or []:
            amount = self._decimal(item.get("cash_amount"), "cash_amount")
            if amount <= 0 or not item.get("ex_dividend_date"):
                continue
            ex_date = date.fromisoformat(item["ex_dividend_date"])
            record = item.get("record_date")
            actions.append(
                CorporateAction(
                    id=str(uuid.uuid4()),
                    symbol=symbol,
                    action_type=CorporateActionType.DIVIDEND,
                    ex_date=ex_date,
                    effective_date=ex_date,
                    record_date=date.fromisoformat(record) if record else None,
                    dividend_amount=amount,
                    dividend_currency=item.get("currency") or "USD",
                    data_source=self.name,
                    external_id=item.get("id"),
                    sources=[self.name],
                )
            )
        return actions
