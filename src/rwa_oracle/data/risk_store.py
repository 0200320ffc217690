"""Typed SQLite access for risk windows, their factors, and recommendations.

Factors belong to exactly one window and are cascade-deleted with it.
At most one window per symbol may cover any instant; callers merge
overlapping candidates before saving.
"""

import json
from datetime import datetime
from decimal import Decimal

from rwa_oracle.data.codec import (
    from_ms,
    opt_dec,
    opt_from_ms,
    opt_str,
    opt_to_ms,
    to_ms,
)
from rwa_oracle.data.database import OracleDatabase
from rwa_oracle.logging import get_logger
from rwa_oracle.models import (
    RiskAction,
    RiskFactor,
    RiskFactorType,
    RiskLevel,
    RiskRecommendation,
    RiskWindow,
)

logger = get_logger(__name__)


def _row_to_factor(row) -> RiskFactor:  # type: ignore[no-untyped-def]
    return RiskFactor(
        factor_type=RiskFactorType(row["factor_type"]),
        description=row["description"],
        impact=Decimal(row["impact"]),
        effective_date=from_ms(row["effective_ms"]),
        details=json.loads(row["details"]) if row["details"] else None,
        risk_window_id=row["risk_window_id"],
    )


def _row_to_recommendation(row) -> RiskRecommendation:  # type: ignore[no-untyped-def]
    return RiskRecommendation(
        id=row["id"],
        symbol=row["symbol"],
        position_id=row["position_id"],
        action=RiskAction(row["action"]),
        current_leverage=Decimal(row["current_leverage"]),
        target_leverage=Decimal(row["target_leverage"]),
        reduction_percentage=opt_dec(row["reduction_percentage"]),
        increase_percentage=opt_dec(row["increase_percentage"]),
        reason=row["reason"],
        priority=RiskLevel(row["priority"]),
        recommended_by=from_ms(row["recommended_at_ms"]),
        valid_until=opt_from_ms(row["valid_until_ms"]),
        acknowledged=bool(row["acknowledged"]),
        acknowledged_at=opt_from_ms(row["acknowledged_at_ms"]),
        acknowledged_by=row["acknowledged_by"],
    )


class RiskStore:
    """Async SQLite store for risk state."""

    def __init__(self, database: OracleDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Risk windows
    # ──────────────────────────────────────────────

    async def save_window(self, window: RiskWindow) -> RiskWindow:
        """Insert a new window or replace an existing one (and its factors)."""
        db = self._database.db
        if window.id is None:
            cursor = await db.execute(
                "INSERT INTO risk_windows (symbol, level, start_ms, end_ms, created_at_ms) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    window.symbol,
                    window.level.value,
                    to_ms(window.start_date),
                    to_ms(window.end_date),
                    to_ms(window.created_at),
                ),
            )
            window.id = cursor.lastrowid
        else:
            await db.execute(
                "UPDATE risk_windows SET level = ?, start_ms = ?, end_ms = ? WHERE id = ?",
                (
                    window.level.value,
                    to_ms(window.start_date),
                    to_ms(window.end_date),
                    window.id,
                ),
            )
            await db.execute("DELETE FROM risk_factors WHERE risk_window_id = ?", (window.id,))

        await db.executemany(
            "INSERT INTO risk_factors "
            "(risk_window_id, factor_type, description, impact, effective_ms, details) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            [
                (
                    window.id,
                    f.factor_type.value,
                    f.description,
                    str(f.impact),
                    to_ms(f.effective_date),
                    json.dumps(f.details) if f.details else None,
                )
                for f in window.factors
            ],
        )
        await db.commit()
        for factor in window.factors:
            factor.risk_window_id = window.id
        logger.debug(
            "risk_window_saved",
            symbol=window.symbol,
            window_id=window.id,
            level=window.level.value,
            factors=len(window.factors),
        )
        return window

    async def delete_window(self, window_id: int) -> None:
        await self._database.db.execute("DELETE FROM risk_windows WHERE id = ?", (window_id,))
        await self._database.db.commit()

    async def get_window(self, window_id: int) -> RiskWindow | None:
        cursor = await self._database.db.execute(
            "SELECT * FROM risk_windows WHERE id = ?", (window_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return await self._hydrate(row)

    async def get_active_window(self, symbol: str, at: datetime) -> RiskWindow | None:
        """Return the window covering `at`, highest level first if several."""
        windows = await self.get_overlapping_windows(symbol, at, at)
        return windows[0] if windows else None

    async def get_overlapping_windows(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[RiskWindow]:
        cursor = await self._database.db.execute(
            "SELECT * FROM risk_windows WHERE symbol = ? AND start_ms <= ? AND end_ms >= ? "
            "ORDER BY start_ms ASC",
            (symbol, to_ms(end), to_ms(start)),
        )
        rows = await cursor.fetchall()
        windows = [await self._hydrate(row) for row in rows]
        return sorted(windows, key=lambda w: w.level.rank, reverse=True)

    async def _hydrate(self, row) -> RiskWindow:  # type: ignore[no-untyped-def]
        cursor = await self._database.db.execute(
            "SELECT * FROM risk_factors WHERE risk_window_id = ? ORDER BY id ASC",
            (row["id"],),
        )
        factor_rows = await cursor.fetchall()
        return RiskWindow(
            id=row["id"],
            symbol=row["symbol"],
            level=RiskLevel(row["level"]),
            start_date=from_ms(row["start_ms"]),
            end_date=from_ms(row["end_ms"]),
            created_at=from_ms(row["created_at_ms"]),
            factors=[_row_to_factor(r) for r in factor_rows],
        )

    async def count_factors(self, window_id: int) -> int:
        cursor = await self._database.db.execute(
            "SELECT COUNT(*) AS n FROM risk_factors WHERE risk_window_id = ?", (window_id,)
        )
        row = await cursor.fetchone()
        return int(row["n"])

    # ──────────────────────────────────────────────
    # Recommendations
    # ──────────────────────────────────────────────

    async def insert_recommendation(self, rec: RiskRecommendation) -> None:
        await self._database.db.execute(
            "INSERT INTO risk_recommendations "
            "(id, symbol, position_id, action, current_leverage, target_leverage, "
            "reduction_percentage, increase_percentage, reason, priority, priority_rank, "
            "recommended_at_ms, valid_until_ms, acknowledged, acknowledged_at_ms, acknowledged_by) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                rec.id,
                rec.symbol,
                rec.position_id,
                rec.action.value,
                str(rec.current_leverage),
                str(rec.target_leverage),
                opt_str(rec.reduction_percentage),
                opt_str(rec.increase_percentage),
                rec.reason,
                rec.priority.value,
                rec.priority.rank,
                to_ms(rec.recommended_by),
                opt_to_ms(rec.valid_until),
                int(rec.acknowledged),
                opt_to_ms(rec.acknowledged_at),
                rec.acknowledged_by,
            ),
        )
        await self._database.db.commit()

    async def get_recommendation(self, rec_id: str) -> RiskRecommendation | None:
        cursor = await self._database.db.execute(
            "SELECT * FROM risk_recommendations WHERE id = ?", (rec_id,)
        )
        row = await cursor.fetchone()
        return _row_to_recommendation(row) if row is not None else None

    async def list_open_recommendations(
        self, symbol: str, now: datetime
    ) -> list[RiskRecommendation]:
        """Unacknowledged, unexpired recommendations, highest priority first."""
        cursor = await self._database.db.execute(
            "SELECT * FROM risk_recommendations "
            "WHERE symbol = ? AND acknowledged = 0 "
            "AND (valid_until_ms IS NULL OR valid_until_ms >= ?) "
            "ORDER BY priority_rank DESC, recommended_at_ms DESC",
            (symbol, to_ms(now)),
        )
        rows = await cursor.fetchall()
        return [_row_to_recommendation(row) for row in rows]

    async def acknowledge(self, rec_id: str, by: str | None, at: datetime) -> bool:
        """Mark acknowledged. Returns False when it was already acknowledged."""
        cursor = await self._database.db.execute(
            "UPDATE risk_recommendations "
            "SET acknowledged = 1, acknowledged_at_ms = ?, acknowledged_by = ? "
            "WHERE id = ? AND acknowledged = 0",
            (to_ms(at), by, rec_id),
        )
        await self._database.db.commit()
        return cursor.rowcount > 0
