"""IEX Cloud client."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from rwa_oracle.exceptions import SymbolNotFound
from rwa_oracle.models import CorporateAction, CorporateActionType, ProviderQuote
from rwa_oracle.providers.http import HttpProvider


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value[:10])


class IexCloudProvider(HttpProvider):
    """IEX Cloud REST client."""

    name = "iex_cloud"

    async def fetch_price(self, symbol: str) -> ProviderQuote:
        payload = await self._get_json(
            f"/stock/{symbol}/quote", params={"token": self._api_key}
        )
        if not payload or payload.get("latestPrice") is None:
            raise SymbolNotFound(self.name, f"no quote for {symbol}")
        updated = payload.get("latestUpdate")
        as_of = (
            datetime.fromtimestamp(int(updated) / 1000, tz=timezone.utc)
            if updated
            else datetime.now(timezone.utc)
        )
        return ProviderQuote(
            provider=self.name,
            symbol=symbol,
            price=self._decimal(payload["latestPrice"], "latestPrice"),
            as_of=as_of,
        )

    async def fetch_price_at_date(self, symbol: str, day: date) -> ProviderQuote:
        payload = await self._get_json(
            f"/stock/{symbol}/chart/date/{day.strftime('%Y%m%d')}",
            params={"chartByDay": "true", "token": self._api_key},
        )
        if not payload:
            raise SymbolNotFound(self.name, f"no chart for {symbol} on {day}")
        bar = payload[-1]
        return ProviderQuote(
            provider=self.name,
            symbol=symbol,
            price=self._decimal(bar.get("close"), "close"),
            as_of=datetime(day.year, day.month, day.day, 21, tzinfo=timezone.utc),
        )

    async def fetch_splits(self, symbol: str) -> list[CorporateAction]:
        payload = await self._get_json(
            f"/stock/{symbol}/splits/5y", params={"token": self._api_key}
        )
        actions = []
        for item in payload or []:
            ex_date = _parse_date(item.get("exDate"))
            if ex_date is None:
                continue
            if item.get("toFactor") and item.get("fromFactor"):
                ratio = self._decimal(item["toFactor"], "toFactor") / self._decimal(
                    item["fromFactor"], "fromFactor"
                )
            else:
                # IEX "ratio" is old shares per new share
                inverse = self._decimal(item.get("ratio"), "ratio")
                if inverse <= 0:
                    continue
                ratio = Decimal("1") / inverse
            actions.append(
                CorporateAction(
                    id=str(uuid.uuid4()),
                    symbol=symbol,
                    action_type=CorporateActionType.SPLIT,
                    ex_date=ex_date,
                    effective_date=ex_date,
                    split_ratio=ratio,
                    data_source=self.name,
                    external_id=item.get("refid") and str(item["refid"]),
                    sources=[self.name],
                )
            )
        return actions

    async def fetch_dividends(self, symbol: str) -> list[CorporateAction]:
        payload = await self._get_json(
            f"/stock/{symbol}/dividends/5y", params={"token": self._api_key}
        )
        actions = []
        for item in payload or []:
            ex_date = _parse_date(item.get("exDate"))
            if ex_date is None:
                continue
            amount = self._decimal(item.get("amount"), "amount")
            if amount <= 0:
                continue
            actions.append(
                CorporateAction(
                    id=str(uuid.uuid4()),
                    symbol=symbol,
                    action_type=CorporateActionType.DIVIDEND,
                    ex_date=ex_date,
                    effective_date=ex_date,
                    record_date=_parse_date(item.get("recordDate")),
                    dividend_amount=amount,
                    dividend_currency=item.get("currency") or "USD",
                    data_source=self.name,
                    external_id=item.get("refid") and str(item["refid"]),
                    sources=[self.name],
                )
            )
        return actions
