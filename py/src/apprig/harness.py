from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from apprig.capture import capture_context
from apprig.errors import RemoteModeUnsupportedError
from apprig.local import LocalDispatcher
from apprig.mode import Mode, select_mode
from apprig.remote import DEFAULT_TIMEOUT, RemoteDispatcher
from apprig.request import Request, build_request, normalize_request
from apprig.response import Response


@dataclass(slots=True)
class Harness:
    """Sends requests to an application in-process or to a live server.

    The dispatch path is fixed when the harness is built; changing
    ``APPRIG_SERVER`` afterwards has no effect on it.
    """

    mode: Mode
    _dispatch: Callable[[Request], Response]
    _local: LocalDispatcher | None
    _remote: RemoteDispatcher | None

    def __init__(
        self,
        mode: Mode,
        *,
        stdio: bool = False,
        environ: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.mode = mode
        self._local = None
        self._remote = None
        if mode.is_remote:
            self._remote = RemoteDispatcher(mode.base_url, timeout=timeout, client=client, transport=transport)
            self._dispatch = self._remote.dispatch
        else:
            self._local = LocalDispatcher(mode.app, stdio=stdio, environ=environ)
            self._dispatch = self._local.dispatch

    def request(
        self,
        value: Any,
        *,
        method: str | None = None,
        headers: Mapping[str, Any] | None = None,
        body: Any = None,
        form: Mapping[str, Any] | list[tuple[str, Any]] | None = None,
        json: Any = None,
    ) -> Response:
        req = _build(value, method=method, headers=headers, body=body, form=form, json=json)
        return self._dispatch(req)

    def get(self, value: Any, **kwargs: Any) -> str:
        """Body text of the response; redirects are not followed."""
        return self.request(value, **kwargs).text

    def ctx_request(self, value: Any, **kwargs: Any) -> tuple[Response, Any | None]:
        """Like ``request`` but also returns the application's dispatch context.

        Only local mode can see the context.
        """
        if self.mode.is_remote:
            raise RemoteModeUnsupportedError()

        req = _build(value, **kwargs)
        with capture_context(self.mode.app) as capture:
            resp = self._dispatch(req)
        return resp, capture.context

    def close(self) -> None:
        if self._remote is not None:
            self._remote.close()

    def __enter__(self) -> Harness:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


def create_harness(
    target: Any | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    stdio: bool = False,
    timeout: float = DEFAULT_TIMEOUT,
    client: httpx.Client | None = None,
    transport: httpx.BaseTransport | None = None,
) -> Harness:
    return Harness(
        select_mode(target, environ=environ),
        stdio=stdio,
        environ=environ,
        timeout=timeout,
        client=client,
        transport=transport,
    )


def _build(
    value: Any,
    *,
    method: str | None = None,
    headers: Mapping[str, Any] | None = None,
    body: Any = None,
    form: Mapping[str, Any] | list[tuple[str, Any]] | None = None,
    json: Any = None,
) -> Request:
    if headers is None and body is None and form is None and json is None:
        return normalize_request(value, method=method)
    return build_request(method, value, headers=headers, body=body, form=form, json=json)
