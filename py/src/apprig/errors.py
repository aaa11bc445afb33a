from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class RigError(Exception):
    code: str
    message: str
    cause: Exception | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def with_cause(self, cause: Exception) -> RigError:
        self.cause = cause
        self.__cause__ = cause
        return self


class InvalidInputError(RigError):
    def __init__(self, message: str) -> None:
        super().__init__("rig.invalid_input", message)


class ConfigurationError(RigError):
    def __init__(self, message: str) -> None:
        super().__init__("rig.configuration", message)


class HandlerFailure(RigError):
    def __init__(self, message: str) -> None:
        super().__init__("rig.handler_failure", message)


class CaptureError(RigError):
    def __init__(self, message: str) -> None:
        super().__init__("rig.capture", message)


class RemoteModeUnsupportedError(RigError):
    def __init__(self, message: str = "context capture only works with local requests, not remote") -> None:
        super().__init__("rig.remote_unsupported", message)


class TransportError(RigError):
    def __init__(self, message: str) -> None:
        super().__init__("rig.transport", message)


def handler_failure_from(exc: Exception) -> HandlerFailure:
    name = type(exc).__name__
    detail = str(exc).strip()
    message = f"application raised {name}: {detail}" if detail else f"application raised {name}"
    return HandlerFailure(message).with_cause(exc)


def transport_error_from(exc: Exception, url: str) -> TransportError:
    detail = str(exc).strip() or type(exc).__name__
    return TransportError(f"request to {url} failed: {detail}").with_cause(exc)
