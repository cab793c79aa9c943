from __future__ import annotations

import json
import logging
import types
import typing as tp

import anyio
from anyio.abc import TaskGroup

from stowaway._config import CacheConfig
from stowaway._core._headers import Headers
from stowaway._core._storages._async_base import AsyncBaseStorage
from stowaway._core.models import CachedEntry, Request, RequestKey, Response, ResponseMetadata
from stowaway._exceptions import NetworkFailure
from stowaway._fetchers import Fetcher, fetch_with_timeout
from stowaway._router import Strategy
from stowaway._utils import generate_http_date, make_async_iterator

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("stowaway.strategies")

__all__ = ("AsyncStrategyEngine", "generate_offline_response")


def generate_offline_response(config: CacheConfig) -> Response:
    """
    Build the 503 JSON response returned for API requests while offline.
    """
    body = json.dumps(
        {
            "error": config.offline_error,
            "message": config.offline_message,
            "offline": True,
        }
    ).encode("utf-8")
    response = Response(
        status_code=503,
        headers=Headers(
            {
                "Content-Type": "application/json",
                "Date": generate_http_date(),
                "Content-Length": str(len(body)),
            }
        ),
        stream=make_async_iterator([body]),
        metadata=ResponseMetadata(
            stowaway_from_cache=False,
            stowaway_stored=False,
            stowaway_offline=True,
        ),
    )
    setattr(response, "collected_body", body)
    return response


class AsyncStrategyEngine:
    """
    Runs the cache-first, network-first and stale-while-revalidate algorithms.

    Each call is independent of the others. Background revalidations started by
    stale-while-revalidate run in a task group owned by the engine while it is entered with
    ``async with``. On exit the pending revalidations are awaited or cancelled
    depending on ``config.shutdown``. Outside ``async with`` the cached entry is
    still returned, but only after the refresh attempt has finished.

    Args:
        storage: Storage holding the partitions.
        fetcher: Callable sending requests to the network.
        config: Cache configuration.
    """

    def __init__(self, storage: AsyncBaseStorage, fetcher: Fetcher, config: CacheConfig) -> None:
        self.storage = storage
        self.fetcher = fetcher
        self.config = config
        self._task_group: tp.Optional[TaskGroup] = None
        self._pending = 0

    @property
    def pending_revalidations(self) -> int:
        return self._pending

    async def run(self, strategy: Strategy, request: Request, partition: str) -> Response:
        logger.debug(f"Handling strategy: {strategy.value}")
        if strategy is Strategy.CACHE_FIRST:
            return await self.cache_first(request, partition)
        elif strategy is Strategy.NETWORK_FIRST:
            return await self.network_first(request, partition)
        elif strategy is Strategy.STALE_WHILE_REVALIDATE:
            return await self.stale_while_revalidate(request, partition)
        raise ValueError(f"Unknown strategy: {strategy!r}")  # pragma: no cover

    async def cache_first(self, request: Request, partition: str) -> Response:
        key = RequestKey.from_request(request)
        cached = await self.storage.get(partition, key)
        if cached is not None:
            return self._from_cache(cached, partition)

        try:
            response = await self._fetch(request)
        except NetworkFailure:
            if request.is_navigation:
                offline_document = await self._offline_document()
                if offline_document is not None:
                    logger.debug("Network unavailable, serving offline document")
                    return offline_document
            raise
        return await self._store_if_ok(partition, key, response)

    async def network_first(self, request: Request, partition: str) -> Response:
        key = RequestKey.from_request(request)
        try:
            response = await self._fetch(request)
        except NetworkFailure:
            logger.debug("Network unavailable, falling back to partition")
            cached = await self.storage.get(partition, key)
            if cached is not None:
                return self._from_cache(cached, partition)
            if self.config.is_api_host(request.host):
                logger.debug("No cached response for API request, returning offline response")
                return generate_offline_response(self.config)
            raise
        return await self._store_if_ok(partition, key, response)

    async def stale_while_revalidate(self, request: Request, partition: str) -> Response:
        key = RequestKey.from_request(request)
        cached = await self.storage.get(partition, key)
        if cached is not None:
            response = self._from_cache(cached, partition)
            await self._schedule_revalidation(request, partition, key)
            return response

        response = await self._fetch(request)
        return await self._store_if_ok(partition, key, response)

    async def _fetch(self, request: Request) -> Response:
        return await fetch_with_timeout(self.fetcher, request, self.config.fetch_timeout)

    async def _store_if_ok(self, partition: str, key: RequestKey, response: Response) -> Response:
        stored = False
        if response.ok:
            entry = await CachedEntry.from_response(await response.clone())
            logger.debug(f"Storing response in partition {partition}")
            await self.storage.put(partition, key, entry)
            stored = True
        else:
            logger.debug(f"Not storing response with status {response.status_code}")
        response.metadata.update(
            ResponseMetadata(
                stowaway_from_cache=False,
                stowaway_stored=stored,
                stowaway_partition=partition,
            )
        )
        return response

    def _from_cache(self, entry: CachedEntry, partition: str) -> Response:
        logger.debug(f"Serving response from partition {partition}")
        response = entry.to_response()
        response.metadata["stowaway_partition"] = partition
        return response

    async def _offline_document(self) -> tp.Optional[Response]:
        document = self.config.offline_document_key
        try:
            url = self.config.resolve(document)
        except ValueError:
            logger.warning(f"Cannot resolve offline document {document!r} without base_url")
            return None
        cached = await self.storage.get(self.config.static_partition, RequestKey.from_parts("GET", url))
        if cached is None:
            logger.warning(f"Offline document {document!r} is not cached")
            return None
        return self._from_cache(cached, self.config.static_partition)

    async def _schedule_revalidation(self, request: Request, partition: str, key: RequestKey) -> None:
        self._pending += 1
        if self._task_group is None:
            # No task group to own a background refresh outside `async with`
            logger.debug(f"Engine is not running, revalidating {key} before responding")
            await self._revalidate(request, partition, key)
        else:
            self._task_group.start_soon(self._revalidate, request, partition, key, name=f"revalidate {key}")

    async def _revalidate(self, request: Request, partition: str, key: RequestKey) -> None:
        try:
            response = await self._fetch(request)
            await self._store_if_ok(partition, key, response)
        except NetworkFailure as exc:
            logger.warning(f"Background revalidation of {key} failed: {exc}")
        except Exception:
            logger.exception(f"Background revalidation of {key} failed")
        finally:
            self._pending -= 1

    async def __aenter__(self) -> Self:
        if self._task_group is not None:
            raise RuntimeError(f"{type(self).__name__} is already running")
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def aclose(self) -> None:
        if self._task_group is None:
            return
        task_group, self._task_group = self._task_group, None
        if self.config.shutdown == "abandon" and self._pending:
            logger.debug(f"Abandoning {self._pending} background revalidation(s)")
            task_group.cancel_scope.cancel()
        elif self._pending:
            logger.debug(f"Waiting for {self._pending} background revalidation(s)")
        await task_group.__aexit__(None, None, None)

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        await self.aclose()
