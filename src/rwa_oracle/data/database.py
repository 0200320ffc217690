"""Async SQLite database manager for oracle persistence.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance.
"""

import os
from typing import Self

import aiosqlite

from rwa_oracle.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS corporate_actions (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    action_type TEXT NOT NULL,
    ex_date TEXT NOT NULL,
    record_date TEXT,
    effective_date TEXT NOT NULL,
    match_key TEXT NOT NULL,
    split_ratio TEXT,
    dividend_amount TEXT,
    dividend_currency TEXT,
    acquiring_symbol TEXT,
    exchange_ratio TEXT,
    data_source TEXT NOT NULL,
    external_id TEXT,
    sources TEXT NOT NULL DEFAULT '',
    is_verified INTEGER NOT NULL DEFAULT 0,
    created_at_ms INTEGER NOT NULL,
    UNIQUE (symbol, action_type, effective_date, match_key)
);

CREATE TABLE IF NOT EXISTS equity_prices (
    symbol TEXT NOT NULL,
    price_ts_ms INTEGER NOT NULL,
    raw_price TEXT NOT NULL,
    confidence TEXT NOT NULL,
    source TEXT NOT NULL,
    PRIMARY KEY (symbol, price_ts_ms, source)
);

CREATE TABLE IF NOT EXISTS funding_rates (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    rate TEXT NOT NULL,
    hourly_rate TEXT NOT NULL,
    mark_price TEXT NOT NULL,
    spot_price TEXT NOT NULL,
    adjusted_spot_price TEXT NOT NULL,
    premium TEXT NOT NULL,
    premium_percentage TEXT NOT NULL,
    base_rate TEXT NOT NULL,
    corporate_action_adjustment TEXT NOT NULL,
    liquidity_adjustment TEXT NOT NULL,
    volatility_adjustment TEXT NOT NULL,
    volatility TEXT NOT NULL,
    liquidity_score TEXT NOT NULL,
    requires_hold INTEGER NOT NULL DEFAULT 0,
    calculated_at_ms INTEGER NOT NULL,
    valid_until_ms INTEGER NOT NULL,
    on_chain_tx_hash TEXT
);

CREATE TABLE IF NOT EXISTS risk_windows (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    level TEXT NOT NULL,
    start_ms INTEGER NOT NULL,
    end_ms INTEGER NOT NULL,
    created_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS risk_factors (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    risk_window_id INTEGER NOT NULL
        REFERENCES risk_windows(id) ON DELETE CASCADE,
    factor_type TEXT NOT NULL,
    description TEXT NOT NULL,
    impact TEXT NOT NULL,
    effective_ms INTEGER NOT NULL,
    details TEXT
);

CREATE TABLE IF NOT EXISTS risk_recommendations (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    position_id TEXT,
    action TEXT NOT NULL,
    current_leverage TEXT NOT NULL,
    target_leverage TEXT NOT NULL,
    reduction_percentage TEXT,
    increase_percentage TEXT,
    reason TEXT NOT NULL,
    priority TEXT NOT NULL,
    priority_rank INTEGER NOT NULL,
    recommended_at_ms INTEGER NOT NULL,
    valid_until_ms INTEGER,
    acknowledged INTEGER NOT NULL DEFAULT 0,
    acknowledged_at_ms INTEGER,
    acknowledged_by TEXT
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_ca_symbol_effective
    ON corporate_actions(symbol, effective_date);

CREATE INDEX IF NOT EXISTS idx_prices_symbol_ts
    ON equity_prices(symbol, price_ts_ms);

CREATE INDEX IF NOT EXISTS idx_funding_symbol_ts
    ON funding_rates(symbol, calculated_at_ms);

CREATE INDEX IF NOT EXISTS idx_windows_symbol_range
    ON risk_windows(symbol, start_ms, end_ms);

CREATE INDEX IF NOT EXISTS idx_recommendations_symbol
    ON risk_recommendations(symbol, acknowledged);
"""


class OracleDatabase:
    """Async SQLite connection manager for oracle state.

    Manages database lifecycle including schema creation, WAL mode
    configuration, foreign keys, and clean resource cleanup.

    Usage:
        async with OracleDatabase("/path/to/db") as db:
            await db.db.execute("SELECT ...")
    """

    def __init__(self, db_path: str = "data/oracle.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        # Risk factors cascade with their window
        await self._connection.execute("PRAGMA foreign_keys=ON")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("oracle_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("oracle_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
