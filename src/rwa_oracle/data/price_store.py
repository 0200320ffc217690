"""Insert-only store for raw equity price observations.

Adjusted prices are never persisted: adjustment depends on "now", so it is
recomputed on read from the raw price and the corporate-action history.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

from rwa_oracle.data.codec import day_start, from_ms, to_ms
from rwa_oracle.data.database import OracleDatabase
from rwa_oracle.logging import get_logger
from rwa_oracle.models import EquityPrice

logger = get_logger(__name__)


def _row_to_price(row) -> EquityPrice:  # type: ignore[no-untyped-def]
    raw = Decimal(row["raw_price"])
    return EquityPrice(
        symbol=row["symbol"],
        raw_price=raw,
        adjusted_price=raw,
        confidence=Decimal(row["confidence"]),
        price_date=from_ms(row["price_ts_ms"]),
        source=row["source"],
    )


class PriceStore:
    """Async SQLite store for equity price observations."""

    def __init__(self, database: OracleDatabase) -> None:
        self._database = database

    async def insert_price(self, price: EquityPrice) -> bool:
        """Persist a raw observation. Returns False if it was already stored."""
        cursor = await self._database.db.execute(
            "INSERT OR IGNORE INTO equity_prices "
            "(symbol, price_ts_ms, raw_price, confidence, source) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                price.symbol,
                to_ms(price.price_date),
                str(price.raw_price),
                str(price.confidence),
                price.source,
            ),
        )
        await self._database.db.commit()
        return cursor.rowcount > 0

    async def get_latest(self, symbol: str, at_or_before: datetime | None = None) -> EquityPrice | None:
        """Most recent observation, optionally bounded by a timestamp."""
        query = "SELECT * FROM equity_prices WHERE symbol = ?"
        params: list = [symbol]
        if at_or_before is not None:
            query += " AND price_ts_ms <= ?"
            params.append(to_ms(at_or_before))
        query += " ORDER BY price_ts_ms DESC LIMIT 1"
        cursor = await self._database.db.execute(query, params)
        row = await cursor.fetchone()
        return _row_to_price(row) if row is not None else None

    async def get_range(self, symbol: str, start: datetime, end: datetime) -> list[EquityPrice]:
        """Observations with start <= price_date <= end, oldest first."""
        cursor = await self._database.db.execute(
            "SELECT * FROM equity_prices "
            "WHERE symbol = ? AND price_ts_ms >= ? AND price_ts_ms <= ? "
            "ORDER BY price_ts_ms ASC",
            (symbol, to_ms(start), to_ms(end)),
        )
        rows = await cursor.fetchall()
        return [_row_to_price(row) for row in rows]

    async def get_daily_closes(self, symbol: str, start: date, end: date) -> list[tuple[date, Decimal]]:
        """Last observation of each calendar day in [start, end], oldest first."""
        prices = await self.get_range(
            symbol, day_start(start), day_start(end) + timedelta(days=1) - timedelta(milliseconds=1)
        )
        closes: dict[date, Decimal] = {}
        for price in prices:
            closes[price.price_date.date()] = price.raw_price
        return sorted(closes.items())

    async def get_close_before(self, symbol: str, day: date) -> Decimal | None:
        """Last raw price observed strictly before the given day."""
        cursor = await self._database.db.execute(
            "SELECT raw_price FROM equity_prices "
            "WHERE symbol = ? AND price_ts_ms < ? "
            "ORDER BY price_ts_ms DESC LIMIT 1",
            (symbol, to_ms(day_start(day))),
        )
        row = await cursor.fetchone()
        return Decimal(row["raw_price"]) if row is not None else None
