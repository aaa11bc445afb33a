from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from apprig.sanitization import sanitize_field_value, sanitize_log_string


@runtime_checkable
class StructuredLogger(Protocol):
    def debug(self, message: str, *fields: dict[str, Any]) -> None: ...

    def info(self, message: str, *fields: dict[str, Any]) -> None: ...

    def warn(self, message: str, *fields: dict[str, Any]) -> None: ...

    def error(self, message: str, *fields: dict[str, Any]) -> None: ...

    def with_field(self, key: str, value: Any) -> StructuredLogger: ...

    def with_fields(self, fields: dict[str, Any]) -> StructuredLogger: ...

    def flush(self) -> None: ...

    def is_healthy(self) -> bool: ...


class NoOpLogger:
    def debug(self, _message: str, *fields: dict[str, Any]) -> None:
        return None

    def info(self, _message: str, *fields: dict[str, Any]) -> None:
        return None

    def warn(self, _message: str, *fields: dict[str, Any]) -> None:
        return None

    def error(self, _message: str, *fields: dict[str, Any]) -> None:
        return None

    def with_field(self, _key: str, _value: Any) -> StructuredLogger:
        return self

    def with_fields(self, _fields: dict[str, Any]) -> StructuredLogger:
        return self

    def flush(self) -> None:
        return None

    def is_healthy(self) -> bool:
        return True


@dataclass(slots=True)
class LogEntry:
    level: str
    message: str
    fields: dict[str, Any]


@dataclass(slots=True)
class RecordingLogger:
    """Keeps every entry in memory; handy for asserting what a test run logged."""

    entries: list[LogEntry] = field(default_factory=list)
    bound: dict[str, Any] = field(default_factory=dict)

    def debug(self, message: str, *fields: dict[str, Any]) -> None:
        self._record("debug", message, fields)

    def info(self, message: str, *fields: dict[str, Any]) -> None:
        self._record("info", message, fields)

    def warn(self, message: str, *fields: dict[str, Any]) -> None:
        self._record("warn", message, fields)

    def error(self, message: str, *fields: dict[str, Any]) -> None:
        self._record("error", message, fields)

    def with_field(self, key: str, value: Any) -> StructuredLogger:
        return self.with_fields({key: value})

    def with_fields(self, fields: dict[str, Any]) -> StructuredLogger:
        # Children share the entry list so the parent sees everything.
        return RecordingLogger(entries=self.entries, bound={**self.bound, **dict(fields or {})})

    def flush(self) -> None:
        return None

    def is_healthy(self) -> bool:
        return True

    def messages(self, level: str | None = None) -> list[str]:
        return [e.message for e in self.entries if level is None or e.level == level]

    def _record(self, level: str, message: str, fields: tuple[dict[str, Any], ...]) -> None:
        merged: dict[str, Any] = dict(self.bound)
        for f in fields:
            merged.update(f or {})
        clean = {k: sanitize_field_value(k, v) for k, v in merged.items()}
        self.entries.append(LogEntry(level=level, message=sanitize_log_string(message), fields=clean))


_global_logger: StructuredLogger = NoOpLogger()


def get_logger() -> StructuredLogger:
    return _global_logger


def set_logger(logger: StructuredLogger | None) -> None:
    global _global_logger
    _global_logger = logger if logger is not None else NoOpLogger()


__all__ = [
    "LogEntry",
    "NoOpLogger",
    "RecordingLogger",
    "StructuredLogger",
    "get_logger",
    "sanitize_field_value",
    "sanitize_log_string",
    "set_logger",
]
