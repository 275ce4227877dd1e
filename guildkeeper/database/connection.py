"""SQLite connection shared by all record stores."""

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, TypeVar

import structlog

from ..exceptions import DatabaseError, RecordExistsError

logger = structlog.get_logger("guildkeeper.database")

SCHEMA_VERSION = 1

T = TypeVar("T")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS guilds (
        guild_id TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS counting (
        guild_id TEXT PRIMARY KEY,
        channel_id TEXT NOT NULL,
        reset_on_fail INTEGER NOT NULL DEFAULT 0,
        current_number INTEGER NOT NULL DEFAULT 0,
        current_number_by_user_id TEXT,
        current_number_at TIMESTAMP,
        highest_number INTEGER NOT NULL DEFAULT 0,
        highest_number_by_user_id TEXT,
        highest_number_at TIMESTAMP,
        FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_birthdays (
        user_id TEXT PRIMARY KEY,
        birth_date TEXT NOT NULL,
        timezone TEXT NOT NULL,
        show_age INTEGER NOT NULL DEFAULT 0,
        announce_in_guilds_by_default INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY (user_id) REFERENCES users(user_id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS guild_birthdays (
        guild_id TEXT PRIMARY KEY,
        channel_id TEXT NOT NULL,
        FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
    )
    """,
)


class DatabaseConnection:
    """Owns the SQLite connection and runs statements off the event loop.

    Each public coroutine executes its statement(s) in a worker thread
    through asyncio.to_thread. A lock serializes access to the single
    connection, so a multi-statement unit passed to run() is atomic with
    respect to other callers.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        await asyncio.to_thread(self._initialize_sync)

    def _initialize_sync(self) -> None:
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.execute("PRAGMA foreign_keys=ON")
        with self._conn:
            for statement in _SCHEMA:
                self._conn.execute(statement)
            self._conn.execute(
                "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
        logger.info("database_initialized", path=str(self.db_path))

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)
            logger.info("database_closed")

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise DatabaseError("Database not initialized", operation="connect")
        return self._conn

    async def run(self, fn: Callable[[sqlite3.Connection], T], *, operation: str, table: str) -> T:
        """Run ``fn(conn)`` in a transaction on a worker thread.

        Raises:
            RecordExistsError: On a primary key / unique conflict.
            DatabaseError: On any other sqlite failure.
        """
        def _call() -> T:
            with self._lock:
                conn = self.connection
                with conn:
                    return fn(conn)

        try:
            return await asyncio.to_thread(_call)
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) or "PRIMARY KEY" in str(e):
                raise RecordExistsError(str(e), operation=operation, table=table) from e
            raise DatabaseError(str(e), operation=operation, table=table) from e
        except sqlite3.Error as e:
            logger.error("database_error", operation=operation, table=table, error=str(e))
            raise DatabaseError(str(e), operation=operation, table=table) from e

    async def fetchone(
        self, sql: str, params: Sequence[Any] = (), *, table: str
    ) -> Optional[dict]:
        def _fetch(conn: sqlite3.Connection) -> Optional[dict]:
            row = conn.execute(sql, params).fetchone()
            return dict(row) if row is not None else None

        return await self.run(_fetch, operation="query", table=table)

    async def execute(
        self, sql: str, params: Sequence[Any] = (), *, operation: str, table: str
    ) -> int:
        """Execute one statement and return the affected row count."""
        def _exec(conn: sqlite3.Connection) -> int:
            return conn.execute(sql, params).rowcount

        return await self.run(_exec, operation=operation, table=table)
