"""Append-only store for computed funding rates.

Rows are superseded by newer rows, never updated, except for recording the
on-chain transaction hash after a successful primary publish.
"""

from datetime import datetime
from decimal import Decimal

from rwa_oracle.data.codec import from_ms, to_ms
from rwa_oracle.data.database import OracleDatabase
from rwa_oracle.logging import get_logger
from rwa_oracle.models import FundingRate

logger = get_logger(__name__)

_DECIMAL_FIELDS = (
    "rate",
    "hourly_rate",
    "mark_price",
    "spot_price",
    "adjusted_spot_price",
    "premium",
    "premium_percentage",
    "base_rate",
    "corporate_action_adjustment",
    "liquidity_adjustment",
    "volatility_adjustment",
    "volatility",
    "liquidity_score",
)


def _row_to_rate(row) -> FundingRate:  # type: ignore[no-untyped-def]
    values = {name: Decimal(row[name]) for name in _DECIMAL_FIELDS}
    return FundingRate(
        id=row["id"],
        symbol=row["symbol"],
        calculated_at=from_ms(row["calculated_at_ms"]),
        valid_until=from_ms(row["valid_until_ms"]),
        requires_hold=bool(row["requires_hold"]),
        on_chain_transaction_hash=row["on_chain_tx_hash"],
        **values,
    )


class FundingRateStore:
    """Async SQLite store for funding-rate rows."""

    def __init__(self, database: OracleDatabase) -> None:
        self._database = database

    async def insert(self, rate: FundingRate) -> None:
        columns = ("id", "symbol", *_DECIMAL_FIELDS, "requires_hold", "calculated_at_ms", "valid_until_ms")
        values = (
            rate.id,
            rate.symbol,
            *(str(getattr(rate, name)) for name in _DECIMAL_FIELDS),
            int(rate.requires_hold),
            to_ms(rate.calculated_at),
            to_ms(rate.valid_until),
        )
        placeholders = ", ".join("?" for _ in columns)
        await self._database.db.execute(
            f"INSERT INTO funding_rates ({', '.join(columns)}) VALUES ({placeholders})",
            values,
        )
        await self._database.db.commit()
        logger.debug("funding_rate_stored", symbol=rate.symbol, rate=str(rate.rate))

    async def get_latest(self, symbol: str) -> FundingRate | None:
        cursor = await self._database.db.execute(
            "SELECT * FROM funding_rates WHERE symbol = ? "
            "ORDER BY calculated_at_ms DESC LIMIT 1",
            (symbol,),
        )
        row = await cursor.fetchone()
        return _row_to_rate(row) if row is not None else None

    async def get_by_id(self, rate_id: str) -> FundingRate | None:
        cursor = await self._database.db.execute(
            "SELECT * FROM funding_rates WHERE id = ?", (rate_id,)
        )
        row = await cursor.fetchone()
        return _row_to_rate(row) if row is not None else None

    async def get_history(self, symbol: str, since: datetime) -> list[FundingRate]:
        """Rows calculated at or after `since`, newest first."""
        cursor = await self._database.db.execute(
            "SELECT * FROM funding_rates WHERE symbol = ? AND calculated_at_ms >= ? "
            "ORDER BY calculated_at_ms DESC",
            (symbol, to_ms(since)),
        )
        rows = await cursor.fetchall()
        return [_row_to_rate(row) for row in rows]

    async def set_transaction_hash(self, rate_id: str, tx_hash: str) -> bool:
        cursor = await self._database.db.execute(
            "UPDATE funding_rates SET on_chain_tx_hash = ? WHERE id = ?",
            (tx_hash, rate_id),
        )
        await self._database.db.commit()
        return cursor.rowcount > 0
