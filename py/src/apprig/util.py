from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_path(path: str) -> str:
    value = str(path or "").strip()
    if not value:
        return "/"
    if not value.startswith("/"):
        value = "/" + value
    return value


def canonicalize_headers(headers: Mapping[str, Any] | Iterable[tuple[str, Any]] | None) -> dict[str, list[str]]:
    if not headers:
        return {}
    items = headers.items() if isinstance(headers, Mapping) else headers
    out: dict[str, list[str]] = {}
    for key, value in items:
        lower = str(key).strip().lower()
        if not lower:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        out.setdefault(lower, []).extend([str(v) for v in values])
    return out


def first_header_value(headers: Mapping[str, list[str]], key: str) -> str:
    values = headers.get(str(key or "").strip().lower(), [])
    return str(values[0]) if values else ""


def header_items(headers: Mapping[str, list[str]]) -> list[tuple[str, str]]:
    return [(key, value) for key, values in headers.items() for value in values]


def default_port(scheme: str) -> int:
    return DEFAULT_PORTS.get(str(scheme or "").lower(), 80)


def to_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, bytes):
        return bytes(value)
    if isinstance(value, bytearray):
        return bytes(value)
    if isinstance(value, memoryview):
        return value.tobytes()
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError("body must be bytes-like or str")
