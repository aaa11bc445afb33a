from __future__ import annotations

import atexit
import threading
import urllib.parse
from dataclasses import dataclass

import httpx

from apprig.errors import ConfigurationError, InvalidInputError, transport_error_from
from apprig.logger import get_logger
from apprig.request import Request
from apprig.response import Response, response_from_httpx
from apprig.sanitization import sanitize_headers
from apprig.util import default_port, header_items

DEFAULT_TIMEOUT = 60.0

_shared_client: httpx.Client | None = None
_shared_lock = threading.Lock()


@dataclass(frozen=True, slots=True)
class BaseURL:
    scheme: str
    host: str
    port: int
    path: str


def parse_base_url(url: str) -> BaseURL:
    raw = str(url or "").strip()
    parts = urllib.parse.urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme not in {"http", "https"}:
        raise ConfigurationError(f"remote server url must be http or https: {raw!r}")
    if not parts.hostname:
        raise ConfigurationError(f"remote server url has no host: {raw!r}")
    try:
        port = parts.port or default_port(scheme)
    except ValueError:
        raise ConfigurationError(f"remote server url has an invalid port: {raw!r}") from None

    path = parts.path
    if path.endswith("/"):
        path = path[:-1]
    return BaseURL(scheme=scheme, host=parts.hostname, port=port, path=path)


def compose_path(base_path: str, request_path: str) -> str:
    """Join a server base path and a request path without repeating a shared prefix.

    Leading request segments are dropped while they match the base segments
    in order; the walk stops at the first mismatch. Trailing empty segments
    are discarded, so ``/foo/`` composes like ``/foo``. A request for exactly
    ``/`` keeps its trailing slash.
    """
    base = base_path[:-1] if base_path.endswith("/") else base_path
    if not base:
        return request_path or "/"

    add_trailing = request_path == "/"
    base_segments = base.split("/")[1:]
    rest = request_path.split("/")[1:]
    while rest and not rest[-1]:
        rest.pop()

    for segment in base_segments:
        if rest and rest[0] == segment:
            rest.pop(0)
        else:
            break

    joined = "/".join(rest)
    if joined and not joined.startswith("/"):
        joined = "/" + joined
    if add_trailing:
        joined += "/"
    return base + joined


def new_client(*, timeout: float = DEFAULT_TIMEOUT, transport: httpx.BaseTransport | None = None) -> httpx.Client:
    return httpx.Client(
        follow_redirects=False,
        timeout=timeout,
        trust_env=True,
        transport=transport,
    )


def shared_client() -> httpx.Client:
    global _shared_client
    with _shared_lock:
        if _shared_client is None or _shared_client.is_closed:
            _shared_client = new_client()
        return _shared_client


def close_shared_client() -> None:
    global _shared_client
    with _shared_lock:
        if _shared_client is not None:
            _shared_client.close()
        _shared_client = None


atexit.register(close_shared_client)


@dataclass(slots=True)
class RemoteDispatcher:
    base: BaseURL
    timeout: float
    _client: httpx.Client | None
    _owns_client: bool

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base = parse_base_url(base_url)
        self.timeout = float(timeout)
        self._owns_client = client is None and transport is not None
        self._client = new_client(timeout=self.timeout, transport=transport) if self._owns_client else client

    @property
    def client(self) -> httpx.Client:
        return self._client if self._client is not None else shared_client()

    def rewrite(self, request: Request) -> Request:
        headers = request.headers
        if request.header("host") == request.netloc:
            # Derived from the old target; let the client set it for the new one.
            headers = {k: v for k, v in headers.items() if k != "host"}
        return request.replace(
            headers=headers,
            scheme=self.base.scheme,
            host=self.base.host,
            port=self.base.port,
            path=compose_path(self.base.path, request.path),
        )

    def dispatch(self, request: Request) -> Response:
        logger = get_logger()
        target = self.rewrite(request)
        logger.debug(
            "apprig: remote dispatch",
            {"method": target.method, "url": target.url, "headers": sanitize_headers(target.headers)},
        )

        client = self.client
        try:
            outgoing = client.build_request(
                target.method,
                target.url,
                headers=header_items(target.headers),
                content=target.body or None,
                timeout=self.timeout,
            )
        except httpx.InvalidURL as exc:
            raise InvalidInputError(f"cannot send request to {target.url!r}: {exc}") from exc

        try:
            resp = client.send(outgoing, follow_redirects=False)
        except httpx.RequestError as exc:
            logger.warn("apprig: remote transport failure", {"url": target.url, "error": repr(exc)})
            raise transport_error_from(exc, target.url) from exc

        out = response_from_httpx(resp)
        logger.debug("apprig: remote response", {"url": target.url, "status": out.status, "bytes": len(out.body)})
        return out

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
