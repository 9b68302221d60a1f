"""SQLite connection manager for the conversation log, with versioned schema setup."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from agent_relay.log import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS conversation_history (
    seq               INTEGER PRIMARY KEY AUTOINCREMENT,
    id                TEXT    NOT NULL UNIQUE,
    model             TEXT    NOT NULL DEFAULT '',
    finish_reason     TEXT    NOT NULL DEFAULT '',
    role              TEXT    NOT NULL CHECK(role IN ('system','user','assistant','tool')),
    completion_tokens INTEGER NOT NULL DEFAULT 0,
    prompt_tokens     INTEGER NOT NULL DEFAULT 0,
    total_tokens      INTEGER NOT NULL DEFAULT 0,
    user_id           TEXT,
    chat_id           TEXT,
    session_id        TEXT,
    agent_id          TEXT,
    timestamp         INTEGER NOT NULL,
    message           TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_session
    ON conversation_history(session_id, timestamp, seq);

CREATE INDEX IF NOT EXISTS idx_history_user
    ON conversation_history(user_id, timestamp, seq);
"""


class Database:
    """Owns the single aiosqlite connection of the conversation log."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the connection and bring the schema up to ``SCHEMA_VERSION``."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            journal = "WAL"
        else:
            journal = "MEMORY"
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        await conn.execute(f"PRAGMA journal_mode={journal}")

        async with conn.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        version = row[0] if row else 0
        if version < SCHEMA_VERSION:
            await conn.executescript(SCHEMA_SQL)
            await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            await conn.commit()
            logger.info("database_migrated", path=self._db_path, from_version=version, to_version=SCHEMA_VERSION)

        self._conn = conn
        logger.info("database_initialized", path=self._db_path, schema_version=SCHEMA_VERSION)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed", path=self._db_path)
