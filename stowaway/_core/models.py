from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Literal,
    Mapping,
    MutableMapping,
    Optional,
    TypedDict,
)
from urllib.parse import urlsplit, urlunsplit

from stowaway._core._headers import Headers
from stowaway._utils import make_async_iterator

RequestMode = Literal["navigate", "cors", "no-cors", "same-origin"]

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """
    Normalize a URL so that equivalent spellings compare equal.

    Lower-cases the scheme and host, drops the default port and the
    fragment, and turns an empty path into "/".
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    netloc = host
    if parts.port is not None and DEFAULT_PORTS.get(scheme) != parts.port:
        netloc = f"{host}:{parts.port}"
    if parts.username is not None:
        userinfo = parts.username if parts.password is None else f"{parts.username}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


class RequestMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "stowaway_" to avoid collisions with user data
    stowaway_timeout: float | None
    """Overrides the configured fetch timeout for this request."""


@dataclass
class Request:
    method: str
    url: str
    headers: Headers = field(default_factory=Headers)
    mode: RequestMode = "no-cors"
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: RequestMetadata | MutableMapping[str, Any] = field(default_factory=dict)

    @property
    def host(self) -> str:
        return (urlsplit(self.url).hostname or "").lower()

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def is_navigation(self) -> bool:
        return self.mode == "navigate"

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire request body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return getattr(self, "collected_body")  # type: ignore[no-any-return]

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "stowaway_" to avoid collisions with user data
    stowaway_from_cache: bool
    """Indicates whether the response was served from a partition."""

    stowaway_stored: bool
    """Indicates whether the response was stored in a partition."""

    stowaway_stored_at: float
    """Timestamp when the response was stored."""

    stowaway_partition: str
    """Name of the partition the response was read from or written to."""

    stowaway_offline: bool
    """Set on responses synthesized while the network is unavailable."""


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=Headers)
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: ResponseMetadata | MutableMapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content(self) -> bytes:
        if not hasattr(self, "collected_body"):
            raise RuntimeError("Response body was not read, call `aread` first")
        return getattr(self, "collected_body")  # type: ignore[no-any-return]

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire response body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return getattr(self, "collected_body")  # type: ignore[no-any-return]

        if not isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            raise TypeError("Response stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected

    async def clone(self) -> Response:
        """
        Return an independent copy that can be consumed separately from this response.

        The body is collected first, so both copies replay the same bytes.
        """
        body = await self.aread()
        cloned = replace(
            self,
            headers=Headers({key: list(values) for key, values in self.headers._headers.items()}),
            stream=make_async_iterator([body]),
            metadata=dict(self.metadata),
        )
        setattr(cloned, "collected_body", body)
        return cloned


@dataclass(frozen=True)
class RequestKey:
    method: str
    url: str

    @classmethod
    def from_request(cls, request: Request) -> RequestKey:
        return cls.from_parts(request.method, request.url)

    @classmethod
    def from_parts(cls, method: str, url: str) -> RequestKey:
        return cls(method=method.upper(), url=normalize_url(url))

    @classmethod
    def parse(cls, value: str) -> RequestKey:
        method, _, url = value.partition(" ")
        if not url:
            raise ValueError(f"Malformed request key: {value!r}")
        return cls(method=method, url=url)

    def __str__(self) -> str:
        return f"{self.method} {self.url}"


@dataclass(frozen=True)
class CachedEntry:
    status_code: int
    headers: Mapping[str, tuple[str, ...]]
    body: bytes
    stored_at: float = field(default_factory=time.time)

    @classmethod
    async def from_response(cls, response: Response, stored_at: Optional[float] = None) -> CachedEntry:
        body = await response.aread()
        return cls(
            status_code=response.status_code,
            headers={key: tuple(values) for key, values in response.headers._headers.items()},
            body=body,
            stored_at=stored_at if stored_at is not None else time.time(),
        )

    def to_response(self) -> Response:
        response = Response(
            status_code=self.status_code,
            headers=Headers({key: list(values) for key, values in self.headers.items()}),
            stream=make_async_iterator([self.body]),
            metadata=ResponseMetadata(
                stowaway_from_cache=True,
                stowaway_stored_at=self.stored_at,
            ),
        )
        setattr(response, "collected_body", self.body)
        return response
