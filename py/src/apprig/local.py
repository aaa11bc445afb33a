from __future__ import annotations

import contextlib
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from apprig.errors import ConfigurationError, RigError, handler_failure_from
from apprig.logger import get_logger
from apprig.request import Request
from apprig.response import Response, parse_response
from apprig.sanitization import sanitize_headers
from apprig.transport import Transport, bind_request, substitute_stdio


@runtime_checkable
class Application(Protocol):
    def handle_request(self, transport: Transport) -> Any: ...


@dataclass(slots=True)
class LocalDispatcher:
    app: Any
    stdio: bool
    environ: Mapping[str, str] | None

    def __init__(self, app: Any, *, stdio: bool = False, environ: Mapping[str, str] | None = None) -> None:
        if not callable(getattr(app, "handle_request", None)):
            raise ConfigurationError(f"{_describe(app)} has no handle_request entry point")
        self.app = app
        self.stdio = bool(stdio)
        self.environ = environ

    def dispatch(self, request: Request) -> Response:
        logger = get_logger()
        logger.debug(
            "apprig: local dispatch",
            {
                "method": request.method,
                "url": request.url,
                "headers": sanitize_headers(request.headers),
                "stdio": self.stdio,
            },
        )

        transport = bind_request(request, self.environ)
        try:
            with self._bound(transport):
                try:
                    self.app.handle_request(transport)
                except RigError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "apprig: application fault",
                        {"method": request.method, "url": request.url, "error": repr(exc)},
                    )
                    raise handler_failure_from(exc) from exc
            raw = transport.output()
        finally:
            transport.discard()

        resp = parse_response(raw)
        logger.debug("apprig: local response", {"url": request.url, "status": resp.status, "bytes": len(resp.body)})
        return resp

    def _bound(self, transport: Transport) -> contextlib.AbstractContextManager[Transport]:
        if self.stdio:
            return substitute_stdio(transport)
        return contextlib.nullcontext(transport)


def _describe(app: Any) -> str:
    name = getattr(app, "__name__", None) or type(app).__name__
    return f"application {name!r}"
