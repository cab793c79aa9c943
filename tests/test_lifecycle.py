from dataclasses import replace

import pytest

from stowaway import (
    AsyncInMemoryStorage,
    AsyncLifecycleManager,
    CacheConfig,
    CachedEntry,
    InstallFailure,
    RequestKey,
)
from tests.conftest import FakeFetcher

ENTRY = CachedEntry(status_code=200, headers={}, body=b"old", stored_at=1.0)


@pytest.mark.anyio
async def test_install_stores_every_static_asset(config: CacheConfig, fetcher: FakeFetcher) -> None:
    storage = AsyncInMemoryStorage()
    lifecycle = AsyncLifecycleManager(storage, fetcher, config)

    keys = await lifecycle.install()

    assert [str(key) for key in keys] == [
        "GET https://app.example.com/",
        "GET https://app.example.com/index.html",
        "GET https://app.example.com/manifest.json",
        "GET https://fonts.googleapis.com/icon?family=Material+Icons",
    ]
    assert sorted(map(str, await storage.keys("stowaway-static-1.0.0"))) == sorted(map(str, keys))
    entry = await storage.get("stowaway-static-1.0.0", RequestKey.from_parts("GET", "https://app.example.com/index.html"))
    assert entry is not None
    assert entry.body == b"network:https://app.example.com/index.html"
    assert lifecycle.skip_waiting is True
    assert not lifecycle.busy


@pytest.mark.anyio
async def test_install_is_all_or_nothing(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    fetcher = FakeFetcher(offline={"https://app.example.com/manifest.json"})
    lifecycle = AsyncLifecycleManager(storage, fetcher, config)

    with pytest.raises(InstallFailure) as exc_info:
        await lifecycle.install()

    assert exc_info.value.url == "https://app.example.com/manifest.json"
    assert await storage.keys("stowaway-static-1.0.0") == []
    assert lifecycle.skip_waiting is False
    assert not lifecycle.busy


@pytest.mark.anyio
async def test_install_fails_on_error_status(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    fetcher = FakeFetcher(routes={"https://app.example.com/index.html": (404, b"not found")})
    lifecycle = AsyncLifecycleManager(storage, fetcher, config)

    with pytest.raises(InstallFailure, match="returned status 404"):
        await lifecycle.install()

    assert await storage.keys("stowaway-static-1.0.0") == []


@pytest.mark.anyio
async def test_failed_install_keeps_previous_version(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    await AsyncLifecycleManager(storage, FakeFetcher(), config).install()

    new_config = replace(config, static_version="2.0.0")
    with pytest.raises(InstallFailure):
        await AsyncLifecycleManager(storage, FakeFetcher(offline=True), new_config).install()

    assert len(await storage.keys("stowaway-static-1.0.0")) == 4
    assert await storage.keys("stowaway-static-2.0.0") == []


@pytest.mark.anyio
async def test_activate_removes_stale_partitions(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    key = RequestKey.from_parts("GET", "https://app.example.com/index.html")
    await storage.put("stowaway-static-0.9.0", key, ENTRY)
    await storage.put("stowaway-dynamic-0.9.0", key, ENTRY)
    await storage.put("stowaway-dynamic-1.0.0", key, ENTRY)
    lifecycle = AsyncLifecycleManager(storage, FakeFetcher(), config)
    await lifecycle.install()

    deleted = await lifecycle.activate()

    assert deleted == ["stowaway-static-0.9.0", "stowaway-dynamic-0.9.0"]
    assert sorted(await storage.list_partitions()) == ["stowaway-dynamic-1.0.0", "stowaway-static-1.0.0"]
    assert lifecycle.clients_claimed is True


@pytest.mark.anyio
async def test_activate_is_idempotent(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    await storage.put("stowaway-static-0.9.0", RequestKey.from_parts("GET", "https://a.com/"), ENTRY)
    lifecycle = AsyncLifecycleManager(storage, FakeFetcher(), config)
    await lifecycle.install()

    assert await lifecycle.activate() == ["stowaway-static-0.9.0"]
    assert await lifecycle.activate() == []
    assert await storage.list_partitions() == ["stowaway-static-1.0.0"]


@pytest.mark.anyio
async def test_install_is_idempotent(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    first_keys = await AsyncLifecycleManager(storage, FakeFetcher(), config).install()

    offline = FakeFetcher(offline=True)
    again = AsyncLifecycleManager(storage, offline, config)
    keys = await again.install()

    assert keys == first_keys
    assert offline.calls == []
    assert len(await storage.keys("stowaway-static-1.0.0")) == 4


@pytest.mark.anyio
async def test_install_completes_partial_partition(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    await storage.put("stowaway-static-1.0.0", RequestKey.from_parts("GET", "https://app.example.com/"), ENTRY)
    fetcher = FakeFetcher()

    await AsyncLifecycleManager(storage, fetcher, config).install()

    assert len(fetcher.calls) == 4
    assert len(await storage.keys("stowaway-static-1.0.0")) == 4


@pytest.mark.anyio
async def test_version_rotation(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    first = AsyncLifecycleManager(storage, FakeFetcher(), config)
    await first.install()
    await first.activate()
    await storage.put(
        "stowaway-dynamic-1.0.0",
        RequestKey.from_parts("GET", "https://api.example.com/cards"),
        ENTRY,
    )

    second = AsyncLifecycleManager(storage, FakeFetcher(), replace(config, static_version="2.0.0"))
    await second.install()
    deleted = await second.activate()

    assert sorted(deleted) == ["stowaway-dynamic-1.0.0", "stowaway-static-1.0.0"]
    assert await storage.list_partitions() == ["stowaway-static-2.0.0"]
    assert second.version == "stowaway-v2.0.0"


@pytest.mark.anyio
async def test_activate_deletes_foreign_partitions_but_cleanup_keeps_them(config: CacheConfig) -> None:
    key = RequestKey.from_parts("GET", "https://a.com/")

    storage = AsyncInMemoryStorage()
    await storage.put("other-app-v1", key, ENTRY)
    await storage.put("stowaway-static-0.9.0", key, ENTRY)
    lifecycle = AsyncLifecycleManager(storage, FakeFetcher(), config)

    assert await lifecycle.cleanup_old_partitions() == ["stowaway-static-0.9.0"]
    assert await storage.list_partitions() == ["other-app-v1"]

    assert await lifecycle.activate() == ["other-app-v1"]
    assert await storage.list_partitions() == []


@pytest.mark.anyio
async def test_stats(config: CacheConfig) -> None:
    storage = AsyncInMemoryStorage()
    lifecycle = AsyncLifecycleManager(storage, FakeFetcher(), config)
    await lifecycle.install()
    await storage.put(
        "stowaway-dynamic-1.0.0",
        RequestKey.from_parts("GET", "https://api.example.com/cards"),
        ENTRY,
    )

    assert await lifecycle.stats() == {
        "stowaway-static-1.0.0": 4,
        "stowaway-dynamic-1.0.0": 1,
    }


def test_force_activation(config: CacheConfig) -> None:
    lifecycle = AsyncLifecycleManager(AsyncInMemoryStorage(), FakeFetcher(), config)

    lifecycle.force_activation()

    assert lifecycle.skip_waiting is True


@pytest.mark.anyio
async def test_install_logs(config: CacheConfig, caplog: pytest.LogCaptureFixture) -> None:
    lifecycle = AsyncLifecycleManager(AsyncInMemoryStorage(), FakeFetcher(), config)

    with caplog.at_level("INFO", logger="stowaway.lifecycle"):
        await lifecycle.install()
        await lifecycle.activate()

    assert caplog.messages == [
        "Installing stowaway-v1.0.0",
        "Installed 4 static asset(s) into stowaway-static-1.0.0",
        "Activating stowaway-v1.0.0",
        "Activated stowaway-v1.0.0",
    ]
