from __future__ import annotations

import logging
import typing as tp

from stowaway._config import CacheConfig
from stowaway._core._storages._async_base import AsyncBaseStorage
from stowaway._core.models import CachedEntry, Request, RequestKey
from stowaway._exceptions import InstallFailure, NetworkFailure
from stowaway._fetchers import Fetcher, fetch_with_timeout
from stowaway._synchronization import AsyncLock

logger = logging.getLogger("stowaway.lifecycle")

__all__ = ("AsyncLifecycleManager",)


class AsyncLifecycleManager:
    """
    Provisions partitions at install time and removes stale ones at activation.

    Install and activate never run concurrently with each other; callers can
    check ``busy`` to hold requests back while one of them runs.

    ``skip_waiting`` and ``clients_claimed`` are signals for the host embedding
    the cache. Nothing here reads them: ``skip_waiting`` tells it the installed
    version may be activated right away, ``clients_claimed`` that activation
    finished and open clients can be pointed at the new partitions.
    """

    def __init__(self, storage: AsyncBaseStorage, fetcher: Fetcher, config: CacheConfig) -> None:
        self.storage = storage
        self.fetcher = fetcher
        self.config = config
        self.skip_waiting = False
        self.clients_claimed = False
        self._lock = AsyncLock()

    @property
    def version(self) -> str:
        return self.config.version

    @property
    def busy(self) -> bool:
        return self._lock.locked

    @property
    def lock(self) -> AsyncLock:
        return self._lock

    async def install(self) -> tp.List[RequestKey]:
        """
        Open the static partition and pre-fetch every static asset into it.

        Either every asset is stored or none is: the first failed fetch raises
        ``InstallFailure`` before anything is written, leaving the previous
        version in charge. When every asset of the current version is already
        stored nothing is fetched.

        Returns:
            Keys of the stored assets.
        """
        async with self._lock:
            partition = self.config.static_partition
            urls = [self.config.resolve(asset) for asset in self.config.static_assets]
            wanted = [RequestKey.from_parts("GET", url) for url in urls]
            if wanted and set(wanted) <= set(await self.storage.keys(partition)):
                logger.info(f"{self.version} is already installed")
                return wanted

            logger.info(f"Installing {self.version}")
            await self.storage.open_partition(partition)

            fetched: tp.List[tp.Tuple[RequestKey, CachedEntry]] = []
            for url in urls:
                request = Request(method="GET", url=url)
                try:
                    response = await fetch_with_timeout(self.fetcher, request, self.config.fetch_timeout)
                except NetworkFailure as exc:
                    logger.error(f"Install of {self.version} failed fetching {url}: {exc}")
                    raise InstallFailure(f"Could not fetch static asset {url}", url=url) from exc
                if not response.ok:
                    logger.error(f"Install of {self.version} failed: {url} returned {response.status_code}")
                    raise InstallFailure(
                        f"Static asset {url} returned status {response.status_code}",
                        url=url,
                    )
                fetched.append((RequestKey.from_request(request), await CachedEntry.from_response(response)))

            await self.storage.put_many(partition, fetched)
            self.skip_waiting = True
            logger.info(f"Installed {len(fetched)} static asset(s) into {partition}")
            return [key for key, _ in fetched]

    async def activate(self) -> tp.List[str]:
        """
        Delete every partition that is neither the current static nor dynamic one.

        Running it again with nothing new to delete is a no-op.

        Returns:
            Names of the deleted partitions.
        """
        async with self._lock:
            logger.info(f"Activating {self.version}")
            deleted = await self._delete_partitions(
                lambda name: name not in self.config.current_partitions,
            )
            self.clients_claimed = True
            logger.info(f"Activated {self.version}")
            return deleted

    async def cleanup_old_partitions(self) -> tp.List[str]:
        """
        Delete stale partitions that carry this cache's prefix.

        Unlike ``activate``, partitions owned by someone else sharing the storage are left alone.
        """
        prefix = f"{self.config.prefix}-"
        async with self._lock:
            return await self._delete_partitions(
                lambda name: name.startswith(prefix) and name not in self.config.current_partitions,
            )

    async def stats(self) -> tp.Dict[str, int]:
        """Number of entries per partition."""
        return {name: len(await self.storage.keys(name)) for name in await self.storage.list_partitions()}

    def force_activation(self) -> None:
        self.skip_waiting = True

    async def _delete_partitions(self, is_stale: tp.Callable[[str], bool]) -> tp.List[str]:
        deleted = []
        for name in await self.storage.list_partitions():
            if is_stale(name):
                logger.info(f"Deleting stale partition {name}")
                await self.storage.delete_partition(name)
                deleted.append(name)
        return deleted
