from __future__ import annotations

import enum
import typing as tp
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlsplit

__all__ = ("CacheConfig", "PartitionKind")


class PartitionKind(str, enum.Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


DEFAULT_OFFLINE_ERROR = "offline"
DEFAULT_OFFLINE_MESSAGE = "Unable to reach the server. Check your internet connection."


@dataclass
class CacheConfig:
    """
    Configuration of the offline cache.

    Partition names embed the version tags, so bumping a version is the only
    way to invalidate what previous deployments stored.

    Attributes:
    ----------
    static_version : str
        Version tag of the static partition.

        Default: "1.0.0"

    dynamic_version : str | None
        Version tag of the dynamic partition. Falls back to ``static_version``.

    prefix : str
        Prefix of every partition name. Partition names look like
        ``"<prefix>-static-<static_version>"``.

        Default: "stowaway"

        Examples:
        --------
        >>> config = CacheConfig(static_version="2.0.0", prefix="app")
        >>> config.static_partition
        'app-static-2.0.0'
        >>> config.dynamic_partition
        'app-dynamic-2.0.0'

    static_assets : Sequence[str]
        Assets fetched into the static partition at install time. Entries
        starting with "/" are paths resolved against ``base_url`` and are also
        matched by path when routing; absolute URLs are fetched as is.

    static_hosts : Sequence[str]
        Hosts whose requests are always served cache-first from the static partition.

    api_hosts : Sequence[str]
        Hosts served network-first from the dynamic partition.

    api_host_matcher : Callable[[str], bool] | None
        Predicate over the request host. When set it replaces ``api_hosts``.

    offline_document_key : str
        Path (or absolute URL) of the document returned for navigations when
        the network is unreachable and the request is not cached.

        Default: "/index.html"

    base_url : str | None
        Base used to resolve relative ``static_assets`` and the offline document.

    cacheable_methods : Sequence[str]
        Methods that go through the cache. All others are passed straight to the network.

        Default: ("GET",)

    fetch_timeout : float | None
        Seconds a single network call may take before it counts as a network failure.
        ``None`` disables the timeout.

        Default: 30.0

    shutdown : "drain" | "abandon"
        What closing the cache does with background revalidations that are still running:
        wait for them, or cancel them.

        Default: "drain"

    offline_error, offline_message : str
        ``error`` and ``message`` fields of the synthesized offline API response.
    """

    static_version: str = "1.0.0"
    dynamic_version: tp.Optional[str] = None
    prefix: str = "stowaway"
    static_assets: tp.Sequence[str] = ()
    static_hosts: tp.Sequence[str] = ()
    api_hosts: tp.Sequence[str] = ()
    api_host_matcher: tp.Optional[tp.Callable[[str], bool]] = None
    offline_document_key: str = "/index.html"
    base_url: tp.Optional[str] = None
    cacheable_methods: tp.Sequence[str] = ("GET",)
    fetch_timeout: tp.Optional[float] = 30.0
    shutdown: tp.Literal["drain", "abandon"] = "drain"
    offline_error: str = DEFAULT_OFFLINE_ERROR
    offline_message: str = DEFAULT_OFFLINE_MESSAGE
    _static_paths: tp.FrozenSet[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.static_version:
            raise ValueError("static_version must not be empty")
        if self.dynamic_version is None:
            self.dynamic_version = self.static_version
        if self.shutdown not in ("drain", "abandon"):
            raise ValueError(f"Unknown shutdown mode: {self.shutdown!r}")
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive")
        if self.static_partition == self.dynamic_partition:  # pragma: no cover
            raise ValueError("Static and dynamic partitions must have different names")

        self.cacheable_methods = tuple(method.upper() for method in self.cacheable_methods)
        self.static_hosts = tuple(host.lower() for host in self.static_hosts)
        self.api_hosts = tuple(host.lower() for host in self.api_hosts)
        self._static_paths = frozenset(asset for asset in self.static_assets if asset.startswith("/"))

        relative_assets = [asset for asset in self.static_assets if not urlsplit(asset).scheme]
        if relative_assets and self.base_url is None:
            raise ValueError("base_url is required to resolve relative static assets")

    @property
    def static_partition(self) -> str:
        return f"{self.prefix}-static-{self.static_version}"

    @property
    def dynamic_partition(self) -> str:
        return f"{self.prefix}-dynamic-{self.dynamic_version}"

    @property
    def current_partitions(self) -> tp.Tuple[str, str]:
        return (self.static_partition, self.dynamic_partition)

    @property
    def version(self) -> str:
        return f"{self.prefix}-v{self.static_version}"

    @property
    def static_paths(self) -> tp.FrozenSet[str]:
        return self._static_paths

    def partition_for(self, kind: PartitionKind) -> str:
        if kind is PartitionKind.STATIC:
            return self.static_partition
        return self.dynamic_partition

    def is_api_host(self, host: str) -> bool:
        if self.api_host_matcher is not None:
            return self.api_host_matcher(host)
        return host.lower() in self.api_hosts

    def resolve(self, url: str) -> str:
        """Resolve a relative asset path against ``base_url``."""
        if urlsplit(url).scheme:
            return url
        if self.base_url is None:
            raise ValueError(f"Cannot resolve relative URL {url!r} without base_url")
        return urljoin(self.base_url, url)
