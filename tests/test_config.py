import pytest

from stowaway import CacheConfig, PartitionKind


def test_partition_names_embed_versions() -> None:
    config = CacheConfig(static_version="2.0.0", dynamic_version="2.0.1", prefix="app")

    assert config.static_partition == "app-static-2.0.0"
    assert config.dynamic_partition == "app-dynamic-2.0.1"
    assert config.partition_for(PartitionKind.STATIC) == "app-static-2.0.0"
    assert config.partition_for(PartitionKind.DYNAMIC) == "app-dynamic-2.0.1"
    assert config.version == "app-v2.0.0"


def test_dynamic_version_defaults_to_static_version() -> None:
    config = CacheConfig(static_version="3")

    assert config.dynamic_partition == "stowaway-dynamic-3"


def test_relative_assets_need_base_url() -> None:
    with pytest.raises(ValueError, match="base_url"):
        CacheConfig(static_assets=["/index.html"])


def test_absolute_assets_do_not_need_base_url() -> None:
    config = CacheConfig(static_assets=["https://cdn.example.com/app.js"])

    assert config.static_paths == frozenset()


def test_static_paths_only_contain_relative_assets() -> None:
    config = CacheConfig(
        base_url="https://example.com",
        static_assets=["/", "/index.html", "https://cdn.example.com/app.js"],
    )

    assert config.static_paths == frozenset({"/", "/index.html"})


def test_resolve() -> None:
    config = CacheConfig(base_url="https://example.com/app/")

    assert config.resolve("/index.html") == "https://example.com/index.html"
    assert config.resolve("https://cdn.example.com/a.js") == "https://cdn.example.com/a.js"


def test_resolve_without_base_url() -> None:
    with pytest.raises(ValueError):
        CacheConfig().resolve("/index.html")


def test_hosts_and_methods_are_normalized() -> None:
    config = CacheConfig(api_hosts=["API.example.com"], cacheable_methods=["get", "head"])

    assert config.is_api_host("api.example.com")
    assert config.cacheable_methods == ("GET", "HEAD")


def test_api_host_matcher_overrides_api_hosts() -> None:
    config = CacheConfig(api_hosts=["api.example.com"], api_host_matcher=lambda host: host.endswith(".internal"))

    assert config.is_api_host("billing.internal")
    assert not config.is_api_host("api.example.com")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"static_version": ""},
        {"shutdown": "later"},
        {"fetch_timeout": 0},
    ],
)
def test_invalid_config(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        CacheConfig(**kwargs)
