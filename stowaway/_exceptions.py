from __future__ import annotations

import typing as tp

if tp.TYPE_CHECKING:  # pragma: no cover
    from stowaway._core.models import Request

__all__ = ("StowawayError", "NetworkFailure", "InstallFailure", "UnknownMessage")


class StowawayError(Exception): ...


class NetworkFailure(StowawayError):
    """
    Raised by fetchers when a request could not reach the network.

    Non-2xx responses are valid responses and never raise this.
    """

    def __init__(self, message: str, request: Request | None = None) -> None:
        super().__init__(message)
        self.request = request


class InstallFailure(StowawayError):
    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class UnknownMessage(StowawayError): ...
