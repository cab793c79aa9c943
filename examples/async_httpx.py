#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "stowaway[httpx, sqlite]",
# ]
#
# [tool.uv.sources]
# stowaway = { path = "../", editable = true }
# ///

import asyncio
from typing import cast

from stowaway import AsyncSqliteStorage, CacheConfig, ResponseMetadata
from stowaway.httpx import AsyncCacheClient

config = CacheConfig(
    static_version="1.0.0",
    base_url="https://www.python-httpx.org",
    static_assets=("/", "/quickstart/"),
    api_hosts=("pypi.org",),
)


async def fetch_and_print(client, url: str, **kwargs):
    print(f"\n➡ Sending request to {url}...")
    response = await client.get(url, **kwargs)
    meta = cast(ResponseMetadata, response.extensions)

    print(f"📦 Status: {response.status_code}")
    print(f"🚀 Was Stored: {meta.get('stowaway_stored')}")
    print(f"🔄 From Cache: {meta.get('stowaway_from_cache')}")
    print(f"📁 Partition: {meta.get('stowaway_partition')}")


async def main():
    async with AsyncCacheClient(storage=AsyncSqliteStorage(), config=config) as client:
        await client.cache.install()
        print(f"🗑 Deleted partitions: {await client.cache.activate()}")

        await fetch_and_print(client, "https://www.python-httpx.org/quickstart/")
        await fetch_and_print(client, "https://pypi.org/pypi/httpx/json")
        await fetch_and_print(client, "https://www.python-httpx.org/advanced/", extensions={"stowaway_mode": "navigate"})

        print(f"\n📊 {await client.cache.lifecycle.stats()}")


if __name__ == "__main__":
    asyncio.run(main())
