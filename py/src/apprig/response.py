from __future__ import annotations

import http
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

import httpx

from apprig.errors import CaptureError
from apprig.util import canonicalize_headers, first_header_value


@dataclass(frozen=True, slots=True)
class Response:
    status: int
    headers: Mapping[str, tuple[str, ...]]
    body: bytes
    reason: str = ""

    def __post_init__(self) -> None:
        frozen = {k: tuple(v) for k, v in canonicalize_headers(self.headers).items()}
        object.__setattr__(self, "headers", MappingProxyType(frozen))

    def header(self, name: str) -> str:
        return first_header_value(self.headers, name)

    @property
    def charset(self) -> str:
        for param in self.header("content-type").split(";")[1:]:
            key, _, value = param.partition("=")
            if key.strip().lower() == "charset" and value.strip():
                return value.strip().strip('"')
        return "utf-8"

    @property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400 and bool(self.location)

    @property
    def location(self) -> str:
        return self.header("location")


def parse_response(raw: bytes) -> Response:
    """Parse captured output into a Response.

    Accepts a full status line (``HTTP/1.1 200 OK``) or CGI response headers,
    where ``Status:`` carries the status and a bare ``Location:`` means 302.
    """
    if not raw:
        raise CaptureError("application produced no output")

    head, body = _split_head(raw)
    lines = [line.rstrip(b"\r") for line in head.split(b"\n")]

    status = 0
    reason = ""
    if lines and lines[0].startswith(b"HTTP/"):
        status, reason = _parse_status(lines[0].decode("latin-1").split(None, 1)[1:])
        lines = lines[1:]

    headers: dict[str, list[str]] = {}
    last_key = ""
    for line in lines:
        if not line:
            continue
        text = line.decode("latin-1")
        if text[0] in " \t" and last_key:
            headers[last_key][-1] = f"{headers[last_key][-1]} {text.strip()}"
            continue
        name, sep, value = text.partition(":")
        name = name.strip().lower()
        if not sep or not name or " " in name:
            raise CaptureError(f"malformed response header line: {text!r}")
        headers.setdefault(name, []).append(value.strip())
        last_key = name

    if not status:
        cgi_status = headers.pop("status", [])
        if cgi_status:
            status, reason = _parse_status([cgi_status[0]])
        elif headers.get("location"):
            status = 302
        else:
            status = 200

    if not reason:
        reason = _default_reason(status)

    return Response(status=status, headers=headers, body=body, reason=reason)


def response_from_httpx(resp: httpx.Response) -> Response:
    return Response(
        status=int(resp.status_code),
        headers=canonicalize_headers(resp.headers.multi_items()),
        body=bytes(resp.content),
        reason=str(resp.reason_phrase or "") or _default_reason(int(resp.status_code)),
    )


def _split_head(raw: bytes) -> tuple[bytes, bytes]:
    candidates = [(raw.find(sep), sep) for sep in (b"\r\n\r\n", b"\n\n")]
    found = [(idx, sep) for idx, sep in candidates if idx >= 0]
    if not found:
        return raw, b""
    idx, sep = min(found)
    return raw[:idx], raw[idx + len(sep) :]


def _parse_status(parts: list[str]) -> tuple[int, str]:
    raw = " ".join(parts).strip()
    code, _, reason = raw.partition(" ")
    if not code.isdigit() or not 100 <= int(code) <= 999:
        raise CaptureError(f"malformed response status: {raw!r}")
    return int(code), reason.strip()


def _default_reason(status: int) -> str:
    try:
        return http.HTTPStatus(status).phrase
    except ValueError:
        return ""
