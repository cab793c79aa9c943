from __future__ import annotations

from typing import Any, Optional, cast

import msgpack

from stowaway._core.models import CachedEntry


def pack(value: CachedEntry, /) -> bytes:
    return cast(
        bytes,
        msgpack.packb(
            {
                "status_code": value.status_code,
                "headers": {key: list(values) for key, values in value.headers.items()},
                "body": value.body,
                "stored_at": value.stored_at,
            }
        ),
    )


def unpack(value: Optional[bytes], /) -> Optional[CachedEntry]:
    if value is None:
        return None
    data: dict[str, Any] = msgpack.unpackb(value)
    return CachedEntry(
        status_code=data["status_code"],
        headers={key: tuple(values) for key, values in data["headers"].items()},
        body=data["body"],
        stored_at=data["stored_at"],
    )
