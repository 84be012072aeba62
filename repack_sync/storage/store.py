"""
An ordered key-value store on top of SQLite, split into named sublevels.
Values are JSON documents; keys are strings ordered lexicographically.
"""

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, AsyncIterator

from repack_sync.exceptions import StorageError

log = logging.getLogger(__name__)

DOWNLOAD_SOURCES = "downloadSources"
REPACKS = "repacks"


class LevelStore:
    """
    A SQLite-backed store with connection pooling. Each sublevel is an
    independent ordered keyspace sharing one database file.
    """

    def __init__(self, db_path: Path, pool_size: int = 5):
        self.db_path = db_path
        self._pool_size = pool_size
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._sublevels: dict[str, "Sublevel"] = {}
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            return conn
        except sqlite3.Error as e:
            log.error(f"Failed to connect to store database: {e}")
            raise StorageError(f"Cannot open store at '{self.db_path}': {e}") from e

    def _initialize_db(self) -> None:
        """Creates the database file and the entries table if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_connection()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS entries (
                        sublevel TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value TEXT NOT NULL,
                        PRIMARY KEY (sublevel, key)
                    );
                    """
                )
        except sqlite3.Error as e:
            log.error(f"Failed to initialize store database at '{self.db_path}': {e}")
            raise StorageError(f"Cannot initialize store: {e}") from e
        finally:
            conn.close()

    async def run(self, func, *args):
        """Runs a synchronous database function within the connection pool semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(func, *args)

    def execute(self, operation: str, query: str, params: tuple = ()) -> list[tuple]:
        """Runs one statement in its own transaction and returns all fetched rows."""
        conn = self._get_connection()
        try:
            with conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            log.error(f"Store {operation} failed: {e}")
            raise StorageError(f"Store {operation} failed: {e}") from e
        finally:
            conn.close()

    def execute_many(self, operations: list[tuple[str, tuple]]) -> None:
        """Runs several statements atomically: either all of them commit or none."""
        conn = self._get_connection()
        try:
            with conn:
                for query, params in operations:
                    conn.execute(query, params)
        except sqlite3.Error as e:
            log.error(f"Batch write of {len(operations)} operations failed: {e}")
            raise StorageError(f"Batch write failed: {e}") from e
        finally:
            conn.close()

    def sublevel(self, name: str) -> "Sublevel":
        """Returns the keyspace with the given name."""
        if name not in self._sublevels:
            self._sublevels[name] = Sublevel(self, name)
        return self._sublevels[name]

    @property
    def download_sources(self) -> "Sublevel":
        return self.sublevel(DOWNLOAD_SOURCES)

    @property
    def repacks(self) -> "Sublevel":
        return self.sublevel(REPACKS)

    async def vacuum(self) -> None:
        """Optimizes the database file by rebuilding it."""
        await self.run(self._vacuum_sync)

    def _vacuum_sync(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("VACUUM;")
            conn.execute("ANALYZE;")
            log.info("Store database optimized successfully.")
        except sqlite3.Error as e:
            raise StorageError(f"Database vacuum failed: {e}") from e
        finally:
            conn.close()


class Sublevel:
    """One ordered keyspace of a `LevelStore`."""

    def __init__(self, store: LevelStore, name: str):
        self.store = store
        self.name = name

    async def get(self, key: str) -> dict[str, Any] | None:
        """Returns the stored document for `key`, or None when it is missing."""
        rows = await self.store.run(
            self.store.execute,
            "read",
            "SELECT value FROM entries WHERE sublevel = ? AND key = ?",
            (self.name, key),
        )
        return json.loads(rows[0][0]) if rows else None

    async def put(self, key: str, value: dict[str, Any]) -> None:
        await self.store.run(
            self.store.execute, "write", *_put_statement(self.name, key, value)
        )

    async def delete(self, key: str) -> None:
        await self.store.run(
            self.store.execute, "delete", *_delete_statement(self.name, key)
        )

    async def count(self) -> int:
        rows = await self.store.run(
            self.store.execute,
            "count",
            "SELECT COUNT(*) FROM entries WHERE sublevel = ?",
            (self.name,),
        )
        return rows[0][0]

    async def iterate(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """
        Yields every (key, document) pair in key order. Rows are read in
        one snapshot, so writes made while iterating are not observed.
        """
        rows = await self.store.run(
            self.store.execute,
            "iterate",
            "SELECT key, value FROM entries WHERE sublevel = ? ORDER BY key",
            (self.name,),
        )
        for key, value in rows:
            yield key, json.loads(value)

    async def values(self) -> list[dict[str, Any]]:
        return [value async for _, value in self.iterate()]

    def batch(self) -> "WriteBatch":
        return WriteBatch(self)


class WriteBatch:
    """Buffers puts and deletes for one sublevel and commits them atomically."""

    def __init__(self, sublevel: Sublevel):
        self._sublevel = sublevel
        self._operations: list[tuple[str, tuple]] = []

    def __len__(self) -> int:
        return len(self._operations)

    def put(self, key: str, value: dict[str, Any]) -> "WriteBatch":
        self._operations.append(_put_statement(self._sublevel.name, key, value))
        return self

    def delete(self, key: str) -> "WriteBatch":
        self._operations.append(_delete_statement(self._sublevel.name, key))
        return self

    async def write(self) -> None:
        """Commits every buffered operation in a single transaction."""
        if not self._operations:
            return
        operations, self._operations = self._operations, []
        await self._sublevel.store.run(self._sublevel.store.execute_many, operations)
        log.debug(
            f"Committed batch of {len(operations)} operations to "
            f"'{self._sublevel.name}'."
        )


def _put_statement(
    sublevel: str, key: str, value: dict[str, Any]
) -> tuple[str, tuple]:
    return (
        "INSERT OR REPLACE INTO entries (sublevel, key, value) VALUES (?, ?, ?)",
        (sublevel, key, json.dumps(value)),
    )


def _delete_statement(sublevel: str, key: str) -> tuple[str, tuple]:
    return ("DELETE FROM entries WHERE sublevel = ? AND key = ?", (sublevel, key))
