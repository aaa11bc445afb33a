from __future__ import annotations

import sys
from collections.abc import Callable, Iterable
from typing import Any

from apprig.transport import Transport

WSGIApp = Callable[[dict[str, Any], Callable[..., Any]], Iterable[bytes]]


def wsgi_environ(transport: Transport) -> dict[str, Any]:
    environ: dict[str, Any] = dict(transport.environ)
    environ.update(
        {
            "wsgi.version": (1, 0),
            "wsgi.url_scheme": transport.request.scheme,
            "wsgi.input": transport.stdin,
            "wsgi.errors": sys.stderr,
            "wsgi.multithread": False,
            "wsgi.multiprocess": False,
            "wsgi.run_once": True,
        }
    )
    return environ


class WSGIApplication:
    """Adapts a PEP 3333 callable to the harness application contract.

    ``dispatch`` receives the WSGI environ, which is what context capture
    hands back to the caller.
    """

    def __init__(self, wsgi_app: WSGIApp) -> None:
        self.wsgi_app = wsgi_app

    def handle_request(self, transport: Transport) -> None:
        status, headers, body = self.dispatch(wsgi_environ(transport))

        head = [f"HTTP/1.1 {status}"]
        head.extend(f"{name}: {value}" for name, value in headers)
        transport.write(("\r\n".join(head) + "\r\n\r\n").encode("latin-1"))
        transport.write(body)

    def dispatch(self, environ: dict[str, Any]) -> tuple[str, list[tuple[str, str]], bytes]:
        started: dict[str, Any] = {}
        chunks: list[bytes] = []

        def start_response(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Callable[[bytes], None]:
            if started and exc_info is None:
                raise RuntimeError("start_response called twice without exc_info")
            started["status"] = str(status)
            started["headers"] = [(str(k), str(v)) for k, v in headers]
            return chunks.append

        result = self.wsgi_app(environ, start_response)
        try:
            for chunk in result:
                chunks.append(bytes(chunk))
        finally:
            close = getattr(result, "close", None)
            if callable(close):
                close()

        if not started:
            raise RuntimeError("WSGI application did not call start_response")
        return started["status"], started["headers"], b"".join(chunks)
