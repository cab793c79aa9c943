from __future__ import annotations

import enum
import logging
import typing as tp
from dataclasses import dataclass
from urllib.parse import urlsplit

from stowaway._config import CacheConfig, PartitionKind

logger = logging.getLogger("stowaway.router")

__all__ = ("Strategy", "Route", "RoutingRule", "Router")

Matcher = tp.Callable[[str, str, str], bool]
"""Predicate over ``(host, path, method)``."""


class Strategy(str, enum.Enum):
    CACHE_FIRST = "CacheFirst"
    NETWORK_FIRST = "NetworkFirst"
    STALE_WHILE_REVALIDATE = "StaleWhileRevalidate"


@dataclass(frozen=True)
class Route:
    strategy: Strategy
    partition: PartitionKind


@dataclass(frozen=True)
class RoutingRule:
    matcher: Matcher
    strategy: Strategy
    partition: PartitionKind
    name: str = "custom"

    def matches(self, host: str, path: str, method: str) -> bool:
        return self.matcher(host, path, method)

    @property
    def route(self) -> Route:
        return Route(strategy=self.strategy, partition=self.partition)


def _always(host: str, path: str, method: str) -> bool:
    return True


DEFAULT_RULE = RoutingRule(
    matcher=_always,
    strategy=Strategy.STALE_WHILE_REVALIDATE,
    partition=PartitionKind.DYNAMIC,
    name="default",
)


class Router:
    """
    Maps a request to exactly one strategy and partition.

    Rules are tried in order and the first match wins: user supplied rules,
    then static assets and static hosts (cache first), then API hosts
    (network first), then the default rule (stale while revalidate).

    Args:
        config: Cache configuration holding the static asset list and host allowlists.
        rules: Extra rules evaluated before the built-in ones.
    """

    def __init__(self, config: CacheConfig, rules: tp.Sequence[RoutingRule] = ()) -> None:
        self.config = config
        self.rules: tp.List[RoutingRule] = [
            *rules,
            RoutingRule(
                matcher=self._is_static,
                strategy=Strategy.CACHE_FIRST,
                partition=PartitionKind.STATIC,
                name="static",
            ),
            RoutingRule(
                matcher=self._is_api,
                strategy=Strategy.NETWORK_FIRST,
                partition=PartitionKind.DYNAMIC,
                name="api",
            ),
            DEFAULT_RULE,
        ]

    def _is_static(self, host: str, path: str, method: str) -> bool:
        return path in self.config.static_paths or host in self.config.static_hosts

    def _is_api(self, host: str, path: str, method: str) -> bool:
        return self.config.is_api_host(host)

    def is_cacheable(self, method: str) -> bool:
        return method.upper() in self.config.cacheable_methods

    def route(self, method: str, url: str) -> tp.Optional[Route]:
        """
        Select the strategy and partition for a request.

        Returns None for methods that must bypass the cache entirely.
        """
        method = method.upper()
        if not self.is_cacheable(method):
            logger.debug(f"Bypassing cache for {method} request")
            return None

        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        path = parts.path or "/"

        for rule in self.rules:
            if rule.matches(host, path, method):
                logger.debug(f"Request matched rule {rule.name!r}: {rule.strategy.value}/{rule.partition.value}")
                return rule.route

        raise RuntimeError("Unreachable")  # pragma: no cover
