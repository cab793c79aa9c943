from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import (
    Any,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import anyio

from stowaway._core._storages._async_base import AsyncBaseStorage
from stowaway._core._storages._packing import pack, unpack
from stowaway._core.models import CachedEntry, RequestKey
from stowaway._synchronization import AsyncLock
from stowaway._utils import ensure_cache_dict

logger = logging.getLogger("stowaway.storages")


try:
    import anysqlite

    class AsyncSqliteStorage(AsyncBaseStorage):
        """
        Persistent storage backed by a single sqlite database.

        Every write runs in its own transaction, so an interrupted write leaves
        the previous entry in place instead of a partial one.
        """

        def __init__(
            self,
            *,
            connection: Optional[anysqlite.Connection] = None,
            database_path: Union[str, Path] = "stowaway_cache.db",
        ) -> None:
            self.connection = connection
            self.database_path: Path = database_path if isinstance(database_path, Path) else Path(database_path)
            self._initialized = False
            self._lock = AsyncLock()

        async def _ensure_connection(self) -> anysqlite.Connection:
            """Ensure connection is established and database is initialized."""
            if self.connection is None:
                # Create cache directory and resolve full path on first connection
                parent = self.database_path.parent if self.database_path.parent != Path(".") else None
                full_path = ensure_cache_dict(parent) / self.database_path.name
                self.connection = await anysqlite.connect(str(full_path))
            if not self._initialized:
                await self._initialize_database()
                self._initialized = True
            return self.connection

        async def _initialize_database(self) -> None:
            """Initialize the database schema."""
            assert self.connection is not None
            cursor = await self.connection.cursor()

            await cursor.execute("""
                CREATE TABLE IF NOT EXISTS partitions (
                    name TEXT PRIMARY KEY,
                    created_at REAL NOT NULL
                )
            """)

            await cursor.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    partition_name TEXT NOT NULL,
                    request_key TEXT NOT NULL,
                    data BLOB NOT NULL,
                    stored_at REAL NOT NULL,
                    PRIMARY KEY (partition_name, request_key)
                )
            """)

            await self.connection.commit()

        async def open_partition(self, name: str) -> None:
            connection = await self._ensure_connection()
            async with self._lock:
                cursor = await connection.cursor()
                await cursor.execute(
                    "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                    (name, time.time()),
                )
                await connection.commit()

        async def get(self, partition: str, key: RequestKey) -> Optional[CachedEntry]:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "SELECT data FROM entries WHERE partition_name = ? AND request_key = ?",
                (partition, str(key)),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return unpack(row[0])

        async def put(self, partition: str, key: RequestKey, entry: CachedEntry) -> None:
            await self.put_many(partition, [(key, entry)])

        async def put_many(self, partition: str, entries: Sequence[Tuple[RequestKey, CachedEntry]]) -> None:
            rows = [(partition, str(key), pack(entry), entry.stored_at) for key, entry in entries]
            connection = await self._ensure_connection()
            # Shielded so a cancelled caller cannot leave half of the rows uncommitted.
            with anyio.CancelScope(shield=True):
                async with self._lock:
                    cursor = await connection.cursor()
                    await cursor.execute(
                        "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                        (partition, time.time()),
                    )
                    for row in rows:
                        await cursor.execute(
                            "INSERT OR REPLACE INTO entries (partition_name, request_key, data, stored_at) "
                            "VALUES (?, ?, ?, ?)",
                            row,
                        )
                    await connection.commit()

        async def delete(self, partition: str, key: RequestKey) -> bool:
            connection = await self._ensure_connection()
            async with self._lock:
                cursor = await connection.cursor()
                await cursor.execute(
                    "SELECT 1 FROM entries WHERE partition_name = ? AND request_key = ?",
                    (partition, str(key)),
                )
                if await cursor.fetchone() is None:
                    return False
                await cursor.execute(
                    "DELETE FROM entries WHERE partition_name = ? AND request_key = ?",
                    (partition, str(key)),
                )
                await connection.commit()
            return True

        async def keys(self, partition: str) -> List[RequestKey]:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute(
                "SELECT request_key FROM entries WHERE partition_name = ? ORDER BY stored_at, request_key",
                (partition,),
            )
            return [RequestKey.parse(row[0]) for row in await cursor.fetchall()]

        async def delete_partition(self, name: str) -> bool:
            connection = await self._ensure_connection()
            with anyio.CancelScope(shield=True):
                async with self._lock:
                    cursor = await connection.cursor()
                    await cursor.execute("SELECT 1 FROM partitions WHERE name = ?", (name,))
                    deleted = await cursor.fetchone() is not None
                    await cursor.execute("DELETE FROM entries WHERE partition_name = ?", (name,))
                    await cursor.execute("DELETE FROM partitions WHERE name = ?", (name,))
                    await connection.commit()
            if deleted:
                logger.debug(f"Deleted partition {name}")
            return deleted

        async def list_partitions(self) -> List[str]:
            connection = await self._ensure_connection()
            cursor = await connection.cursor()
            await cursor.execute("SELECT name FROM partitions ORDER BY created_at, name")
            return [row[0] for row in await cursor.fetchall()]

        async def close(self) -> None:
            if self.connection is not None:
                await self.connection.close()
                self.connection = None
                self._initialized = False

except ImportError:

    class AsyncSqliteStorage:  # type: ignore[no-redef]
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            raise ImportError(
                "The 'anysqlite' library is required to use the `AsyncSqliteStorage` integration. "
                "Install stowaway with 'pip install stowaway[sqlite]'."
            )
