try:
    import httpx  # noqa: F401
except ImportError as e:
    raise ImportError(
        "httpx is required to use stowaway.httpx module. "
        "Please install stowaway with the 'httpx' extra, "
        "e.g., 'pip install stowaway[httpx]'."
    ) from e


from ._async_httpx import (
    AsyncCacheClient as AsyncCacheClient,
    AsyncCacheTransport as AsyncCacheTransport,
    HttpxFetcher as HttpxFetcher,
)
