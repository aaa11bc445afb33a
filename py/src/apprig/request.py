from __future__ import annotations

import dataclasses
import json as jsonlib
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from apprig.errors import InvalidInputError
from apprig.util import canonicalize_headers, default_port, first_header_value, normalize_path, to_bytes

DEFAULT_HOST = "localhost"


@dataclass(slots=True)
class Request:
    method: str
    path: str
    query: str = ""
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    scheme: str = "http"
    host: str = DEFAULT_HOST
    port: int = 80

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port == default_port(self.scheme):
            return host
        return f"{host}:{self.port}"

    @property
    def target(self) -> str:
        """Request-target as it appears on the request line."""
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def url(self) -> str:
        return urllib.parse.urlunsplit((self.scheme, self.netloc, self.path, self.query, ""))

    def header(self, name: str) -> str:
        return first_header_value(self.headers, name)

    def query_params(self) -> dict[str, list[str]]:
        return urllib.parse.parse_qs(self.query, keep_blank_values=True)

    def replace(self, **changes: Any) -> Request:
        return dataclasses.replace(self, **changes)


def normalize_request(value: Any, *, method: str | None = None) -> Request:
    """Build a fully resolved Request from a URI string or request-like value.

    Strings are either paths (``foo/bar?x=1``) or absolute http(s) URLs.
    Request-like values are ``Request``, ``httpx.Request`` and mappings with
    ``url`` or ``path`` plus optional ``method``, ``headers`` and ``body``.
    """
    if isinstance(value, str):
        req = _request_from_string(value)
    elif isinstance(value, Request):
        req = _request_from_parts(
            method=value.method,
            scheme=value.scheme,
            host=value.host,
            port=value.port,
            path=value.path,
            query=value.query,
            headers=value.headers,
            body=value.body,
        )
    elif isinstance(value, httpx.Request):
        req = _request_from_httpx(value)
    elif isinstance(value, Mapping):
        req = _request_from_mapping(value)
    else:
        raise InvalidInputError(f"cannot build a request from {type(value).__name__}")

    if method is not None:
        req.method = _normalize_method(method)
    return req


def build_request(
    method: str | None,
    uri: Any,
    *,
    headers: Mapping[str, Any] | None = None,
    body: Any = None,
    form: Mapping[str, Any] | list[tuple[str, Any]] | None = None,
    json: Any = None,
) -> Request:
    req = normalize_request(uri, method=method)
    req.headers.update(canonicalize_headers(headers))

    if json is not None:
        req.body = jsonlib.dumps(json, ensure_ascii=False, sort_keys=True).encode("utf-8")
        req.headers.setdefault("content-type", ["application/json; charset=utf-8"])
    elif form is not None:
        req.body = urllib.parse.urlencode(form, doseq=True).encode("ascii")
        req.headers.setdefault("content-type", ["application/x-www-form-urlencoded"])
    elif body is not None:
        try:
            req.body = to_bytes(body)
        except TypeError as exc:
            raise InvalidInputError(str(exc)) from None

    if req.body:
        req.headers["content-length"] = [str(len(req.body))]
    return req


def _request_from_string(value: str) -> Request:
    raw = value.strip()
    lowered = raw.lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        return _request_from_url(raw)

    without_fragment = raw.split("#", 1)[0]
    path, _, query = without_fragment.partition("?")
    return _request_from_parts(method="GET", path=path, query=query)


def _request_from_url(url: str) -> Request:
    parts = urllib.parse.urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in {"http", "https"}:
        raise InvalidInputError(f"unsupported url scheme: {parts.scheme!r}")
    if not parts.hostname:
        raise InvalidInputError(f"url has no host: {url!r}")
    try:
        port = parts.port
    except ValueError:
        raise InvalidInputError(f"url has an invalid port: {url!r}") from None

    return _request_from_parts(
        method="GET",
        scheme=scheme,
        host=parts.hostname,
        port=port,
        path=parts.path,
        query=parts.query,
    )


def _request_from_httpx(value: httpx.Request) -> Request:
    req = _request_from_url(str(value.url))
    req.method = _normalize_method(value.method)
    req.headers = canonicalize_headers(value.headers.multi_items())
    req.body = bytes(value.read())
    return req


def _request_from_mapping(value: Mapping[str, Any]) -> Request:
    target = value.get("url") or value.get("path")
    if not isinstance(target, str):
        raise InvalidInputError("request mapping needs a 'url' or 'path' string")

    req = _request_from_string(target)
    req.method = _normalize_method(value.get("method"))
    req.headers.update(canonicalize_headers(value.get("headers")))
    try:
        req.body = to_bytes(value.get("body"))
    except TypeError as exc:
        raise InvalidInputError(str(exc)) from None
    return req


def _request_from_parts(
    *,
    method: Any,
    path: str,
    query: str = "",
    scheme: str = "http",
    host: str = DEFAULT_HOST,
    port: int | None = None,
    headers: Any = None,
    body: Any = b"",
) -> Request:
    scheme_value = str(scheme or "http").strip().lower()
    try:
        body_bytes = to_bytes(body)
    except TypeError as exc:
        raise InvalidInputError(str(exc)) from None

    return Request(
        method=_normalize_method(method),
        path=normalize_path(path),
        query=str(query or ""),
        headers=canonicalize_headers(headers),
        body=body_bytes,
        scheme=scheme_value,
        host=str(host or DEFAULT_HOST).strip().lower(),
        port=int(port) if port else default_port(scheme_value),
    )


def _normalize_method(method: Any) -> str:
    value = str(method or "").strip().upper()
    return value or "GET"
