from __future__ import annotations

import logging
import types
import typing as tp

from stowaway._config import CacheConfig
from stowaway._core._storages._async_base import AsyncBaseStorage
from stowaway._core._storages._async_memory import AsyncInMemoryStorage
from stowaway._core.models import Request, RequestKey, Response, ResponseMetadata
from stowaway._exceptions import UnknownMessage
from stowaway._fetchers import Fetcher, fetch_with_timeout
from stowaway._lifecycle import AsyncLifecycleManager
from stowaway._router import Router
from stowaway._strategies import AsyncStrategyEngine

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("stowaway.cache")

__all__ = ("AsyncOfflineCache",)


class AsyncOfflineCache:
    """
    Offline-first cache for outbound requests.

    This class is independent of any specific HTTP library and works only with internal models.
    It delegates request execution to a user-provided fetcher, making it compatible with any
    HTTP client. Each request is routed to a strategy and a partition by the router.

    Args:
        fetcher: Callable that sends requests and raises ``NetworkFailure`` when offline.
        storage: Storage backend for the partitions. Defaults to AsyncInMemoryStorage.
        config: Cache configuration. Defaults to CacheConfig().
        router: Router selecting strategies. Defaults to a Router built from ``config``.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        storage: AsyncBaseStorage | None = None,
        config: CacheConfig | None = None,
        router: Router | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.storage = storage if storage is not None else AsyncInMemoryStorage()
        self.config = config if config is not None else CacheConfig()
        self.router = router if router is not None else Router(self.config)
        self.engine = AsyncStrategyEngine(self.storage, fetcher, self.config)
        self.lifecycle = AsyncLifecycleManager(self.storage, fetcher, self.config)

    async def handle_request(self, request: Request) -> Response:
        if self.lifecycle.busy:
            logger.debug("Waiting for install or activation to finish")
            async with self.lifecycle.lock:
                pass

        route = self.router.route(request.method, request.url)
        if route is None:
            response = await fetch_with_timeout(self.fetcher, request, self.config.fetch_timeout)
            response.metadata.update(ResponseMetadata(stowaway_from_cache=False, stowaway_stored=False))
            return response

        partition = self.config.partition_for(route.partition)
        return await self.engine.run(route.strategy, request, partition)

    async def install(self) -> tp.List[RequestKey]:
        return await self.lifecycle.install()

    async def activate(self) -> tp.List[str]:
        return await self.lifecycle.activate()

    async def handle_message(self, message: tp.Mapping[str, tp.Any]) -> tp.Optional[tp.Dict[str, tp.Any]]:
        """
        Handle a control message sent by a client.

        Supported message types:
            ``SKIP_WAITING`` makes the installed version eligible for immediate activation.
            ``GET_VERSION`` returns ``{"version": <version tag>}``.
        """
        message_type = message.get("type")
        logger.debug(f"Received message: {message_type}")
        if message_type == "SKIP_WAITING":
            self.lifecycle.force_activation()
            return None
        if message_type == "GET_VERSION":
            return {"version": self.lifecycle.version}
        raise UnknownMessage(f"Unknown message type: {message_type!r}")

    async def aclose(self) -> None:
        await self.engine.aclose()
        await self.storage.close()

    async def __aenter__(self) -> Self:
        await self.engine.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        await self.aclose()
