from __future__ import annotations

import typing as tp

import anyio

from stowaway._core.models import Request, Response
from stowaway._exceptions import NetworkFailure

__all__ = ("Fetcher", "fetch_with_timeout")

Fetcher = tp.Callable[[Request], tp.Awaitable[Response]]
"""
Sends a request over the network.

Must raise ``NetworkFailure`` when the request could not be completed.
Non-2xx responses are returned, not raised.
"""


async def fetch_with_timeout(fetcher: Fetcher, request: Request, timeout: tp.Optional[float]) -> Response:
    """
    Call the fetcher, converting a timeout into ``NetworkFailure``.

    The request's ``stowaway_timeout`` metadata overrides ``timeout``.
    """
    timeout = request.metadata.get("stowaway_timeout", timeout)
    try:
        with anyio.fail_after(timeout):
            return await fetcher(request)
    except TimeoutError as exc:
        raise NetworkFailure(f"Timed out after {timeout} seconds fetching {request.url}", request=request) from exc
