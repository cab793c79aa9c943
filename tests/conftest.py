from __future__ import annotations

import json
import os
import typing as tp
from datetime import date
from typing import Any

import anysqlite
import pytest

from stowaway import CacheConfig, Headers, NetworkFailure, Request, Response
from stowaway._utils import make_async_iterator

STATIC_ASSETS = (
    "/",
    "/index.html",
    "/manifest.json",
    "https://fonts.googleapis.com/icon?family=Material+Icons",
)


def make_response(status_code: int = 200, body: bytes = b"data", headers: dict[str, str] | None = None) -> Response:
    return Response(
        status_code=status_code,
        headers=Headers(headers or {}),
        stream=make_async_iterator([body]),
    )


def make_request(url: str = "https://example.com/page", method: str = "GET", mode: str = "no-cors") -> Request:
    return Request(method=method, url=url, mode=mode)  # type: ignore[arg-type]


class FakeFetcher:
    """
    Records every request and answers from ``routes`` keyed by URL.

    URLs listed in ``offline`` (or every URL when ``offline`` is True) raise ``NetworkFailure``.
    """

    def __init__(
        self,
        routes: tp.Mapping[str, tp.Tuple[int, bytes]] | None = None,
        offline: bool | tp.Collection[str] = False,
    ) -> None:
        self.routes = dict(routes or {})
        self.offline = offline
        self.calls: tp.List[Request] = []

    def is_offline(self, url: str) -> bool:
        if isinstance(self.offline, bool):
            return self.offline
        return url in self.offline

    async def __call__(self, request: Request) -> Response:
        self.calls.append(request)
        if self.is_offline(request.url):
            raise NetworkFailure(f"Cannot reach {request.url}", request=request)
        status_code, body = self.routes.get(request.url, (200, b"network:" + request.url.encode()))
        return make_response(status_code, body)


@pytest.fixture()
def config() -> CacheConfig:
    return CacheConfig(
        static_version="1.0.0",
        base_url="https://app.example.com",
        static_assets=STATIC_ASSETS,
        static_hosts=("fonts.googleapis.com", "cdn.example.com"),
        api_hosts=("api.example.com",),
        fetch_timeout=5,
    )


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


def format_value(value: Any, col_name: str, col_type: str) -> str:
    """Format a value for display based on its type and column name."""

    if value is None:
        return "NULL"

    if col_type.upper() == "BLOB":
        if isinstance(value, bytes):
            try:
                decoded = value.decode("utf-8")
                if decoded.strip().startswith("{") or decoded.strip().startswith("["):
                    try:
                        parsed = json.loads(decoded)
                        return f"(JSON) {json.dumps(parsed, indent=2)}"
                    except json.JSONDecodeError:
                        pass
                if all(32 <= ord(c) <= 126 or c in "\n\r\t" for c in decoded):
                    return f"(str) '{decoded}'"
            except UnicodeDecodeError:
                pass

            return f"(bytes) ({len(value)} bytes)"
        return repr(value)

    # Only show the date of timestamps
    if col_name.endswith("_at") and isinstance(value, (int, float)):
        try:
            return date.fromtimestamp(value).isoformat()
        except (ValueError, OSError):
            return str(value)

    if col_type.upper() == "TEXT":
        return f"'{value}'"

    return str(value)


def _format_tables(tables: list[tuple[str, list[Any], list[tuple[Any, ...]]]]) -> str:
    output_lines = []
    output_lines.append("=" * 80)
    output_lines.append("DATABASE SNAPSHOT")
    output_lines.append("=" * 80)

    for table_name, columns, rows in tables:
        column_names = [col[1] for col in columns]
        column_types = {col[1]: col[2] for col in columns}

        output_lines.append("")
        output_lines.append(f"TABLE: {table_name}")
        output_lines.append("-" * 80)
        output_lines.append(f"Rows: {len(rows)}")
        output_lines.append("")

        if not rows:
            output_lines.append("  (empty)")
            continue

        for idx, row in enumerate(rows, 1):
            output_lines.append(f"  Row {idx}:")

            for col_name, value in zip(column_names, row):
                formatted_value = format_value(value, col_name, column_types[col_name])
                output_lines.append(f"    {col_name:15} = {formatted_value}")

            if idx < len(rows):
                output_lines.append("")

    output_lines.append("")
    output_lines.append("=" * 80)
    return "\n".join(output_lines)


async def aprint_sqlite_state(conn: anysqlite.Connection) -> str:
    """
    Print all tables and their rows in a pretty format suitable for inline snapshots.
    """
    cursor = await conn.cursor()
    await cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = []
    for (table_name,) in await cursor.fetchall():
        await cursor.execute(f"PRAGMA table_info({table_name})")
        columns = await cursor.fetchall()
        await cursor.execute(f"SELECT * FROM {table_name}")
        tables.append((table_name, columns, await cursor.fetchall()))
    return _format_tables(tables)


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
