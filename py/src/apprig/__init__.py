"""apprig: drive a web application in-process or against a live server from tests."""

from __future__ import annotations

from apprig.capture import ContextCapture, capture_context
from apprig.errors import (
    CaptureError,
    ConfigurationError,
    HandlerFailure,
    InvalidInputError,
    RemoteModeUnsupportedError,
    RigError,
    TransportError,
)
from apprig.harness import Harness, create_harness
from apprig.local import Application, LocalDispatcher
from apprig.logger import NoOpLogger, RecordingLogger, StructuredLogger, get_logger, set_logger
from apprig.mode import ENV_SERVER, Mode, load_application, select_mode
from apprig.remote import DEFAULT_TIMEOUT, BaseURL, RemoteDispatcher, close_shared_client, compose_path, parse_base_url
from apprig.request import Request, build_request, normalize_request
from apprig.response import Response, parse_response
from apprig.transport import Transport, bind_request, build_environ, substitute_stdio
from apprig.wsgi import WSGIApplication

__all__ = [
    "DEFAULT_TIMEOUT",
    "ENV_SERVER",
    "Application",
    "BaseURL",
    "CaptureError",
    "ConfigurationError",
    "ContextCapture",
    "HandlerFailure",
    "Harness",
    "InvalidInputError",
    "LocalDispatcher",
    "Mode",
    "NoOpLogger",
    "RecordingLogger",
    "RemoteDispatcher",
    "RemoteModeUnsupportedError",
    "Request",
    "Response",
    "RigError",
    "StructuredLogger",
    "Transport",
    "TransportError",
    "WSGIApplication",
    "bind_request",
    "build_environ",
    "build_request",
    "capture_context",
    "close_shared_client",
    "compose_path",
    "create_harness",
    "get_logger",
    "load_application",
    "normalize_request",
    "parse_base_url",
    "parse_response",
    "select_mode",
    "set_logger",
    "substitute_stdio",
]
