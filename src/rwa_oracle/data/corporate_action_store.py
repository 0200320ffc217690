"""Typed SQLite access for corporate actions.

Verified rows are immutable. Unverified rows may gain corroborating
sources (and become verified) and may have missing fields filled in.
Rows are never deleted.
"""

from datetime import date

import aiosqlite

from rwa_oracle.data.codec import (
    from_iso,
    from_ms,
    opt_dec,
    opt_str,
    to_iso,
    to_ms,
)
from rwa_oracle.data.database import OracleDatabase
from rwa_oracle.logging import get_logger
from rwa_oracle.models import CorporateAction, CorporateActionType

logger = get_logger(__name__)

_COLUMNS = (
    "id, symbol, action_type, ex_date, record_date, effective_date, match_key, "
    "split_ratio, dividend_amount, dividend_currency, acquiring_symbol, "
    "exchange_ratio, data_source, external_id, sources, is_verified, created_at_ms"
)


def _row_to_action(row: aiosqlite.Row) -> CorporateAction:
    return CorporateAction(
        id=row["id"],
        symbol=row["symbol"],
        action_type=CorporateActionType(row["action_type"]),
        ex_date=date.fromisoformat(row["ex_date"]),
        record_date=from_iso(row["record_date"]),
        effective_date=date.fromisoformat(row["effective_date"]),
        split_ratio=opt_dec(row["split_ratio"]),
        dividend_amount=opt_dec(row["dividend_amount"]),
        dividend_currency=row["dividend_currency"],
        acquiring_symbol=row["acquiring_symbol"],
        exchange_ratio=opt_dec(row["exchange_ratio"]),
        data_source=row["data_source"],
        external_id=row["external_id"],
        sources=[s for s in row["sources"].split(",") if s],
        is_verified=bool(row["is_verified"]),
        created_at=from_ms(row["created_at_ms"]),
    )


def _merge_sources(*groups: list[str]) -> list[str]:
    merged: list[str] = []
    for group in groups:
        for source in group:
            if source not in merged:
                merged.append(source)
    return merged


class CorporateActionStore:
    """Async SQLite store for corporate actions."""

    def __init__(self, database: OracleDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def upsert(self, action: CorporateAction) -> CorporateAction:
        """Insert a new action or merge it into the matching unverified row.

        Returns the persisted state. A verified row is returned unchanged.
        """
        existing = await self.find_matching(action)
        sources = _merge_sources(action.sources or [action.data_source])

        if existing is None:
            await self._database.db.execute(
                f"INSERT INTO corporate_actions ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    action.id,
                    action.symbol,
                    action.action_type.value,
                    action.ex_date.isoformat(),
                    to_iso(action.record_date),
                    action.effective_date.isoformat(),
                    action.match_key,
                    opt_str(action.split_ratio),
                    opt_str(action.dividend_amount),
                    action.dividend_currency,
                    action.acquiring_symbol,
                    opt_str(action.exchange_ratio),
                    action.data_source,
                    action.external_id,
                    ",".join(sources),
                    int(action.is_verified or len(sources) >= 2),
                    to_ms(action.created_at),
                ),
            )
            await self._database.db.commit()
            logger.debug(
                "corporate_action_inserted",
                symbol=action.symbol,
                action_type=action.action_type.value,
                effective_date=action.effective_date.isoformat(),
            )
            stored = await self.get_by_id(action.id)
            assert stored is not None
            return stored

        if existing.is_verified:
            return existing

        merged_sources = _merge_sources(existing.sources, sources)
        verified = action.is_verified or len(merged_sources) >= 2
        await self._database.db.execute(
            "UPDATE corporate_actions SET "
            "record_date = COALESCE(record_date, ?), "
            "dividend_currency = COALESCE(dividend_currency, ?), "
            "external_id = COALESCE(external_id, ?), "
            "sources = ?, is_verified = ? "
            "WHERE id = ? AND is_verified = 0",
            (
                to_iso(action.record_date),
                action.dividend_currency,
                action.external_id,
                ",".join(merged_sources),
                int(verified),
                existing.id,
            ),
        )
        await self._database.db.commit()
        if verified:
            logger.info(
                "corporate_action_verified",
                symbol=existing.symbol,
                action_id=existing.id,
                sources=merged_sources,
            )
        stored = await self.get_by_id(existing.id)
        assert stored is not None
        return stored

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def find_matching(self, action: CorporateAction) -> CorporateAction | None:
        """Return the stored row with the same dedup key, if any."""
        cursor = await self._database.db.execute(
            f"SELECT {_COLUMNS} FROM corporate_actions "
            "WHERE symbol = ? AND action_type = ? AND effective_date = ? AND match_key = ?",
            (
                action.symbol,
                action.action_type.value,
                action.effective_date.isoformat(),
                action.match_key,
            ),
        )
        row = await cursor.fetchone()
        return _row_to_action(row) if row is not None else None

    async def get_by_id(self, action_id: str) -> CorporateAction | None:
        cursor = await self._database.db.execute(
            f"SELECT {_COLUMNS} FROM corporate_actions WHERE id = ?",
            (action_id,),
        )
        row = await cursor.fetchone()
        return _row_to_action(row) if row is not None else None

    async def list_for_symbol(
        self,
        symbol: str,
        from_date: date | None = None,
        to_date: date | None = None,
        verified_only: bool = False,
    ) -> list[CorporateAction]:
        """Return actions with effective_date in [from_date, to_date], oldest first."""
        query = f"SELECT {_COLUMNS} FROM corporate_actions WHERE symbol = ?"
        params: list = [symbol]
        if from_date is not None:
            query += " AND effective_date >= ?"
            params.append(from_date.isoformat())
        if to_date is not None:
            query += " AND effective_date <= ?"
            params.append(to_date.isoformat())
        if verified_only:
            query += " AND is_verified = 1"
        query += " ORDER BY effective_date ASC, created_at_ms ASC"

        cursor = await self._database.db.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_action(row) for row in rows]
