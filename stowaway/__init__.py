from stowaway._config import CacheConfig as CacheConfig, PartitionKind as PartitionKind
from stowaway._core._headers import Headers as Headers
from stowaway._core._storages import (
    AsyncBaseStorage as AsyncBaseStorage,
    AsyncInMemoryStorage as AsyncInMemoryStorage,
    AsyncSqliteStorage as AsyncSqliteStorage,
)
from stowaway._core.models import (
    CachedEntry as CachedEntry,
    Request as Request,
    RequestKey as RequestKey,
    RequestMetadata as RequestMetadata,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
)
from stowaway._exceptions import (
    InstallFailure as InstallFailure,
    NetworkFailure as NetworkFailure,
    StowawayError as StowawayError,
    UnknownMessage as UnknownMessage,
)
from stowaway._fetchers import Fetcher as Fetcher
from stowaway._router import Route as Route, Router as Router, RoutingRule as RoutingRule, Strategy as Strategy
from stowaway._strategies import AsyncStrategyEngine as AsyncStrategyEngine
from stowaway._lifecycle import AsyncLifecycleManager as AsyncLifecycleManager
from stowaway._async_cache import AsyncOfflineCache as AsyncOfflineCache

__all__ = (
    # Cache
    "AsyncOfflineCache",
    "CacheConfig",
    "PartitionKind",
    ## Components
    "Router",
    "Route",
    "RoutingRule",
    "Strategy",
    "AsyncStrategyEngine",
    "AsyncLifecycleManager",
    "Fetcher",
    ## Models
    "Request",
    "Response",
    "RequestKey",
    "CachedEntry",
    "RequestMetadata",
    "ResponseMetadata",
    ## Headers
    "Headers",
    ## Storages
    "AsyncBaseStorage",
    "AsyncInMemoryStorage",
    "AsyncSqliteStorage",
    ## Errors
    "StowawayError",
    "NetworkFailure",
    "InstallFailure",
    "UnknownMessage",
)
