from __future__ import annotations

import ssl
import types
import typing as t
from typing import AsyncIterable, AsyncIterator, Union, overload

from stowaway._async_cache import AsyncOfflineCache
from stowaway._config import CacheConfig
from stowaway._core._headers import Headers
from stowaway._core._storages._async_base import AsyncBaseStorage
from stowaway._core.models import Request, Response
from stowaway._exceptions import NetworkFailure
from stowaway._router import Router
from stowaway._utils import make_async_iterator

try:
    import httpx
except ImportError as e:
    raise ImportError(
        "httpx is required to use stowaway.httpx module. "
        "Please install stowaway with the 'httpx' extra, "
        "e.g., 'pip install stowaway[httpx]'."
    ) from e

if t.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

# 128 KB
CHUNK_SIZE = 131072

MODE_EXTENSION = "stowaway_mode"
VALID_MODES = ("navigate", "cors", "no-cors", "same-origin")


async def _aiter(iterable: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    async for chunk in iterable:
        yield chunk


def _headers_to_internal(headers: httpx.Headers) -> Headers:
    internal = Headers()
    for key, value in headers.multi_items():
        # The body is handed over de-chunked
        if key.lower() != "transfer-encoding":
            internal[key] = value
    return internal


@overload
def _internal_to_httpx(
    value: Request,
) -> httpx.Request: ...
@overload
def _internal_to_httpx(
    value: Response,
) -> httpx.Response: ...
def _internal_to_httpx(
    value: Union[Request, Response],
) -> Union[httpx.Request, httpx.Response]:
    """
    Convert internal Request/Response to httpx.Request/httpx.Response.
    """
    if isinstance(value, Request):
        return httpx.Request(
            method=value.method,
            url=value.url,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value.stream),
            extensions={key: val for key, val in value.metadata.items() if not key.startswith("stowaway_")},
        )
    elif isinstance(value, Response):
        return httpx.Response(
            status_code=value.status_code,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value.stream),
            extensions=dict(value.metadata),
        )


def _httpx_to_internal(value: httpx.Request) -> Request:
    """
    Convert httpx.Request to internal Request.

    The request mode is read from the ``stowaway_mode`` extension.
    """
    mode = value.extensions.get(MODE_EXTENSION, "no-cors")
    if mode not in VALID_MODES:
        raise ValueError(f"Invalid {MODE_EXTENSION} extension: {mode!r}")

    metadata: t.Dict[str, t.Any] = {key: val for key, val in value.extensions.items() if key != MODE_EXTENSION}

    try:
        stream = make_async_iterator([value.content])
    except httpx.RequestNotRead:
        stream = _aiter(t.cast(AsyncIterable[bytes], value.stream))

    return Request(
        method=value.method,
        url=str(value.url),
        headers=_headers_to_internal(value.headers),
        mode=mode,
        stream=stream,
        metadata=metadata,
    )


class _IteratorStream(httpx.AsyncByteStream):
    def __init__(self, iterator: AsyncIterator[bytes]) -> None:
        self.iterator = iterator

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self.iterator:
            yield chunk


class HttpxFetcher:
    """
    Fetcher sending requests through an httpx transport.

    Transport errors become ``NetworkFailure``. The raw body is read eagerly so
    the response can be stored and returned at the same time.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport) -> None:
        self.transport = transport

    async def __call__(self, request: Request) -> Response:
        httpx_request = _internal_to_httpx(request)
        try:
            httpx_response = await self.transport.handle_async_request(httpx_request)
            already_read = httpx_response.is_stream_consumed
            if already_read:
                body = httpx_response.content
            else:
                body = b"".join([chunk async for chunk in httpx_response.aiter_raw(chunk_size=CHUNK_SIZE)])
        except httpx.TransportError as exc:
            raise NetworkFailure(f"{type(exc).__name__}: {exc}", request=request) from exc

        headers = _headers_to_internal(httpx_response.headers)
        if already_read and "content-encoding" in headers:
            # The body was already decoded, so the original encoding and size are gone
            del headers["content-encoding"]
            headers["content-length"] = str(len(body))

        response = Response(
            status_code=httpx_response.status_code,
            headers=headers,
            stream=make_async_iterator([body]),
        )
        setattr(response, "collected_body", body)
        return response

    async def aclose(self) -> None:
        await self.transport.aclose()


class AsyncCacheTransport(httpx.AsyncBaseTransport):
    """
    An HTTPX transport serving requests through an offline-first cache.

    Requests that fail because the network is unreachable and cannot be served
    from the cache raise ``httpx.ConnectError``.

    Args:
        next_transport: Transport used to reach the network.
        storage: Storage backend for the partitions. Defaults to AsyncInMemoryStorage.
        config: Cache configuration. Defaults to CacheConfig().
        router: Router selecting strategies. Defaults to a Router built from ``config``.
    """

    def __init__(
        self,
        next_transport: httpx.AsyncBaseTransport,
        storage: AsyncBaseStorage | None = None,
        config: CacheConfig | None = None,
        router: Router | None = None,
    ) -> None:
        self.next_transport = next_transport
        self.fetcher = HttpxFetcher(next_transport)
        self.cache = AsyncOfflineCache(
            fetcher=self.fetcher,
            storage=storage,
            config=config,
            router=router,
        )
        self.storage = self.cache.storage

    async def handle_async_request(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        internal_request = _httpx_to_internal(request)
        try:
            internal_response = await self.cache.handle_request(internal_request)
        except NetworkFailure as exc:
            raise httpx.ConnectError(str(exc), request=request) from exc
        return _internal_to_httpx(internal_response)

    async def __aenter__(self) -> Self:
        await self.cache.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: t.Optional[t.Type[BaseException]] = None,
        exc_value: t.Optional[BaseException] = None,
        traceback: t.Optional[types.TracebackType] = None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.cache.aclose()
        await self.fetcher.aclose()


class AsyncCacheClient(httpx.AsyncClient):
    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.storage: AsyncBaseStorage | None = kwargs.pop("storage", None)
        self.config: CacheConfig | None = kwargs.pop("config", None)
        self.router: Router | None = kwargs.pop("router", None)
        super().__init__(*args, **kwargs)

    def _init_transport(
        self,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        if isinstance(transport, AsyncCacheTransport):
            return transport

        if transport is not None:
            return AsyncCacheTransport(
                next_transport=transport,
                storage=self.storage,
                config=self.config,
                router=self.router,
            )

        return AsyncCacheTransport(
            next_transport=httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
            ),
            storage=self.storage,
            config=self.config,
            router=self.router,
        )

    def _init_proxy_transport(
        self,
        proxy: httpx.Proxy,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        return AsyncCacheTransport(
            next_transport=httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
                proxy=proxy,
            ),
            storage=self.storage,
            config=self.config,
            router=self.router,
        )

    @property
    def cache(self) -> AsyncOfflineCache:
        transport = self._transport
        if not isinstance(transport, AsyncCacheTransport):  # pragma: no cover
            raise RuntimeError("Client transport is not an AsyncCacheTransport")
        return transport.cache
