from __future__ import annotations

import logging
import typing as tp

from stowaway._core._storages._async_base import AsyncBaseStorage
from stowaway._core.models import CachedEntry, RequestKey
from stowaway._synchronization import AsyncLock

logger = logging.getLogger("stowaway.storages")


class AsyncInMemoryStorage(AsyncBaseStorage):
    """
    A simple in-memory storage.

    Entries are immutable, so they are shared with callers without copying.
    """

    def __init__(self) -> None:
        self._partitions: tp.Dict[str, tp.Dict[RequestKey, CachedEntry]] = {}
        self._lock = AsyncLock()

    async def open_partition(self, name: str) -> None:
        async with self._lock:
            self._partitions.setdefault(name, {})

    async def get(self, partition: str, key: RequestKey) -> tp.Optional[CachedEntry]:
        return self._partitions.get(partition, {}).get(key)

    async def put(self, partition: str, key: RequestKey, entry: CachedEntry) -> None:
        async with self._lock:
            self._partitions.setdefault(partition, {})[key] = entry

    async def put_many(self, partition: str, entries: tp.Sequence[tp.Tuple[RequestKey, CachedEntry]]) -> None:
        async with self._lock:
            self._partitions.setdefault(partition, {}).update(entries)

    async def delete(self, partition: str, key: RequestKey) -> bool:
        async with self._lock:
            return self._partitions.get(partition, {}).pop(key, None) is not None

    async def keys(self, partition: str) -> tp.List[RequestKey]:
        return list(self._partitions.get(partition, {}))

    async def delete_partition(self, name: str) -> bool:
        async with self._lock:
            deleted = self._partitions.pop(name, None) is not None
        if deleted:
            logger.debug(f"Deleted partition {name}")
        return deleted

    async def list_partitions(self) -> tp.List[str]:
        return list(self._partitions)
