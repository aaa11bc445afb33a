from __future__ import annotations

from collections.abc import Mapping
from typing import Any

_REDACTED_VALUE = "[REDACTED]"

_SENSITIVE_HEADERS: set[str] = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-auth-token",
}

_BLOCKED_SUBSTRINGS = (
    "secret",
    "token",
    "password",
    "api-key",
    "api_key",
    "session",
)


def sanitize_log_string(value: str) -> str:
    v = str(value or "")
    if not v:
        return v
    return v.replace("\r", "").replace("\n", "")


def sanitize_field_value(key: str, value: Any) -> Any:
    k = str(key or "").strip().lower()
    if k in _SENSITIVE_HEADERS:
        return _REDACTED_VALUE
    for s in _BLOCKED_SUBSTRINGS:
        if s in k:
            return _REDACTED_VALUE
    return _sanitize_value(value)


def sanitize_headers(headers: Mapping[str, Any] | None) -> dict[str, Any]:
    if not headers:
        return {}
    return {str(k): sanitize_field_value(str(k), v) for k, v in headers.items()}


def _sanitize_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return sanitize_log_string(value)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): sanitize_field_value(str(k), v) for k, v in value.items()}
    return value
