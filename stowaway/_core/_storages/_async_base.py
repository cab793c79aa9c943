from __future__ import annotations

import abc
import typing as tp

from ..models import CachedEntry, RequestKey


class AsyncBaseStorage(abc.ABC):
    """
    Key/value store of cached responses, split into named partitions.

    A single ``put`` or ``delete`` is atomic: readers observe either the old
    entry or the new one, and concurrent writers to the same key resolve as
    last-writer-wins.
    """

    @abc.abstractmethod
    async def open_partition(self, name: str) -> None:
        """Create the partition if it does not exist yet."""
        raise NotImplementedError()

    @abc.abstractmethod
    async def get(self, partition: str, key: RequestKey) -> tp.Optional[CachedEntry]:
        raise NotImplementedError()

    @abc.abstractmethod
    async def put(self, partition: str, key: RequestKey, entry: CachedEntry) -> None:
        raise NotImplementedError()

    async def put_many(self, partition: str, entries: tp.Sequence[tp.Tuple[RequestKey, CachedEntry]]) -> None:
        """
        Store several entries at once.

        Backends that can write all of them in one transaction should override this.
        """
        for key, entry in entries:
            await self.put(partition, key, entry)

    @abc.abstractmethod
    async def delete(self, partition: str, key: RequestKey) -> bool:
        raise NotImplementedError()

    @abc.abstractmethod
    async def keys(self, partition: str) -> tp.List[RequestKey]:
        raise NotImplementedError()

    @abc.abstractmethod
    async def delete_partition(self, name: str) -> bool:
        raise NotImplementedError()

    @abc.abstractmethod
    async def list_partitions(self) -> tp.List[str]:
        raise NotImplementedError()

    async def close(self) -> None:
        pass
