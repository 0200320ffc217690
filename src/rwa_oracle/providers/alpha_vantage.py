"""Alpha Vantage client.

Alpha Vantage answers quota exhaustion with HTTP 200 and a "Note" or
"Information" body, and unknown symbols with an "Error Message" body or
an empty quote object.
"""

import uuid
from datetime import date, datetime, timezone

from rwa_oracle.exceptions import RateLimited, SymbolNotFound
from rwa_oracle.models import CorporateAction, CorporateActionType, ProviderQuote
from rwa_oracle.providers.http import HttpProvider


def _parse_date(value: str | None) -> date | None:
    if not value or value == "None":
        return None
    return date.fromisoformat(value)


def _market_close(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, 21, tzinfo=timezone.utc)


class AlphaVantageProvider(HttpProvider):
    """Alpha Vantage REST client (single query endpoint keyed by `function`)."""

    name = "alpha_vantage"

    async def _query(self, function: str, symbol: str, **extra: str) -> dict:
        payload = await self._get_json(
            "",
            params={"function": function, "symbol": symbol, "apikey": self._api_key, **extra},
        )
        if "Note" in payload or "Information" in payload:
            raise RateLimited(self.name, payload.get("Note") or payload.get("Information"))
        if "Error Message" in payload:
            raise SymbolNotFound(self.name, payload["Error Message"])
        return payload

    async def fetch_price(self, symbol: str) -> ProviderQuote:
        payload = await self._query("GLOBAL_QUOTE", symbol)
        quote = payload.get("Global Quote") or {}
        if "05. price" not in quote:
            raise SymbolNotFound(self.name, f"no quote for {symbol}")
        trading_day = _parse_date(quote.get("07. latest trading day")) or date.today()
        return ProviderQuote(
            provider=self.name,
            symbol=symbol,
            price=self._decimal(quote["05. price"], "price"),
            as_of=_market_close(trading_day),
        )

    async def fetch_price_at_date(self, symbol: str, day: date) -> ProviderQuote:
        payload = await self._query("TIME_SERIES_DAILY", symbol, outputsize="full")
        series = payload.get("Time Series (Daily)") or {}
        bar = series.get(day.isoformat())
        if bar is None:
            raise SymbolNotFound(self.name, f"no bar for {symbol} on {day}")
        return ProviderQuote(
            provider=self.name,
            symbol=symbol,
            price=self._decimal(bar.get("4. close"), "close"),
            as_of=_market_close(day),
        )

    async def fetch_splits(self, symbol: str) -> list[CorporateAction]:
        payload = await self._query("SPLITS", symbol)
        actions = []
        for item in payload.get("data") or []:
            effective = _parse_date(item.get("effective_date"))
            ratio = self._decimal(item.get("split_factor"), "split_factor")
            if effective is None or ratio <= 0:
                continue
            actions.append(
                CorporateAction(
                    id=str(uuid.uuid4()),
                    symbol=symbol,
                    action_type=CorporateActionType.SPLIT,
                    ex_date=effective,
                    effective_date=effective,
                    split_ratio=ratio,
                    data_source=self.name,
                    sources=[self.name],
                )
            )
        return actions

    async def fetch_dividends(self, symbol: str) -> list[CorporateAction]:
        payload = await self._query("DIVIDENDS", symbol)
        actions = []
        for item in payload.get("data") or []:
            ex_date = _parse_date(item.get("ex_dividend_date"))
            amount = self._decimal(item.get("amount"), "amount")
            if ex_date is None or amount <= 0:
                continue
            actions.append(
                CorporateAction(
                    id=str(uuid.uuid4()),
                    symbol=symbol,
                    action_type=CorporateActionType.DIVIDEND,
                    ex_date=ex_date,
                    effective_date=ex_date,
                    record_date=_parse_date(item.get("record_date")),
                    dividend_amount=amount,
                    dividend_currency="USD",
                    data_source=self.name,
                    sources=[self.name],
                )
            )
        return actions
