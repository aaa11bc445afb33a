from __future__ import annotations

import contextlib
import io
import os
import sys
import threading
import urllib.parse
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from apprig.errors import CaptureError
from apprig.request import Request

SERVER_SOFTWARE = "apprig"

# Only one process-wide stdin/stdout substitution may be active at a time.
_stdio_lock = threading.Lock()

_HOP_HEADERS_NOT_EXPORTED = {"proxy"}


@dataclass(slots=True)
class Transport:
    """In-memory stand-in for the socket an application would talk to.

    ``stdin`` holds the request body, ``stdout`` collects whatever the
    application writes back, and ``environ`` carries CGI/1.1 meta-variables
    describing the request.
    """

    request: Request
    environ: dict[str, str]
    stdin: io.BytesIO
    stdout: io.BytesIO

    def read(self, size: int = -1) -> bytes:
        return self.stdin.read(size)

    def write(self, data: bytes | str) -> int:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return self.stdout.write(data)

    def output(self) -> bytes:
        if self.stdout.closed:
            raise CaptureError("output stream was closed before the response could be read")
        return self.stdout.getvalue()

    def discard(self) -> None:
        self.stdin.close()
        self.stdout.close()


def bind_request(request: Request, environ: Mapping[str, str] | None = None) -> Transport:
    return Transport(
        request=request,
        environ=build_environ(request, os.environ if environ is None else environ),
        stdin=io.BytesIO(request.body),
        stdout=io.BytesIO(),
    )


def build_environ(request: Request, base: Mapping[str, str] | None = None) -> dict[str, str]:
    env: dict[str, str] = {}
    for key, value in (base or {}).items():
        name = str(key)
        if name.startswith("HTTP_") or name in {"CONTENT_TYPE", "CONTENT_LENGTH"}:
            continue
        env[name] = str(value)

    path_info = urllib.parse.unquote_to_bytes(request.path).decode("latin-1")
    env.update(
        {
            "GATEWAY_INTERFACE": "CGI/1.1",
            "SERVER_PROTOCOL": "HTTP/1.1",
            "SERVER_SOFTWARE": SERVER_SOFTWARE,
            "REQUEST_METHOD": request.method,
            "SCRIPT_NAME": "",
            "PATH_INFO": path_info,
            "QUERY_STRING": request.query,
            "REQUEST_URI": request.target,
            "SERVER_NAME": request.host,
            "SERVER_PORT": str(request.port),
            "REMOTE_ADDR": "127.0.0.1",
            "REMOTE_HOST": "localhost",
            "HTTP_HOST": request.netloc,
        }
    )
    if request.scheme == "https":
        env["HTTPS"] = "ON"
    else:
        env.pop("HTTPS", None)

    for name, values in request.headers.items():
        if name in _HOP_HEADERS_NOT_EXPORTED:
            continue
        if name == "content-type":
            env["CONTENT_TYPE"] = values[-1] if values else ""
            continue
        if name == "content-length":
            continue
        sep = "; " if name == "cookie" else ", "
        env["HTTP_" + name.upper().replace("-", "_")] = sep.join(values)

    if request.body or "content-length" in request.headers:
        env["CONTENT_LENGTH"] = str(len(request.body))

    return env


@contextlib.contextmanager
def substitute_stdio(transport: Transport) -> Iterator[Transport]:
    """Point ``sys.stdin``/``sys.stdout`` at the transport for the block.

    The original streams are put back on every exit path.
    """
    if not _stdio_lock.acquire(blocking=False):
        raise CaptureError("another standard stream substitution is already active")

    saved_stdin, saved_stdout = sys.stdin, sys.stdout
    fake_stdin = io.TextIOWrapper(transport.stdin, encoding="utf-8", newline="")
    fake_stdout = io.TextIOWrapper(transport.stdout, encoding="utf-8", newline="", write_through=True)
    sys.stdin, sys.stdout = fake_stdin, fake_stdout
    try:
        yield transport
    finally:
        sys.stdin, sys.stdout = saved_stdin, saved_stdout
        # Detaching keeps the byte buffers open; a wrapper the app closed has nothing left to detach.
        for wrapper in (fake_stdout, fake_stdin):
            with contextlib.suppress(ValueError):
                wrapper.detach()
        _stdio_lock.release()
