from __future__ import annotations

import contextlib
import functools
import inspect
import types
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from apprig.errors import ConfigurationError

_MISSING = object()


@dataclass(slots=True)
class ContextCapture:
    """What was observed at the application's dispatch entry point."""

    context: Any | None = None
    calls: int = 0

    @property
    def captured(self) -> bool:
        return self.calls > 0

    def record(self, context: Any) -> None:
        if self.calls == 0:
            self.context = context
        self.calls += 1


@contextlib.contextmanager
def capture_context(app: Any) -> Iterator[ContextCapture]:
    """Interpose on ``app.dispatch`` for the duration of the block.

    The first argument of the first dispatch call is kept on the yielded
    ContextCapture and the call is forwarded unchanged. The original entry
    point is restored however the block exits.
    """
    if not callable(getattr(app, "dispatch", None)):
        raise ConfigurationError(f"{type(app).__name__!r} has no dispatch entry point to capture")

    capture = ContextCapture()
    owner, replacement = _interposition(app, capture)

    saved = vars(owner).get("dispatch", _MISSING)
    setattr(owner, "dispatch", replacement)
    try:
        yield capture
    finally:
        if saved is _MISSING:
            delattr(owner, "dispatch")
        else:
            setattr(owner, "dispatch", saved)


def _interposition(app: Any, capture: ContextCapture) -> tuple[Any, Callable[..., Any]]:
    if _has_writable_namespace(app):
        bound = app.dispatch

        @functools.wraps(bound)
        def dispatch(*args: Any, **kwargs: Any) -> Any:
            capture.record(args[0] if args else kwargs.get("context"))
            return bound(*args, **kwargs)

        return app, dispatch

    # Slotted or frozen objects: swap the class attribute instead.
    cls = type(app)
    raw = inspect.getattr_static(cls, "dispatch")

    if isinstance(raw, staticmethod):
        func = raw.__func__

        @functools.wraps(func)
        def dispatch_static(*args: Any, **kwargs: Any) -> Any:
            capture.record(args[0] if args else kwargs.get("context"))
            return func(*args, **kwargs)

        return cls, staticmethod(dispatch_static)

    if isinstance(raw, classmethod):
        func = raw.__func__

        @functools.wraps(func)
        def dispatch_class(klass: type, *args: Any, **kwargs: Any) -> Any:
            capture.record(args[0] if args else kwargs.get("context"))
            return func(klass, *args, **kwargs)

        return cls, classmethod(dispatch_class)

    unbound = cls.dispatch
    if not inspect.isfunction(unbound):
        raise ConfigurationError(f"cannot interpose on {type(raw).__name__} dispatch of {cls.__name__!r}")

    @functools.wraps(unbound)
    def dispatch_method(self: Any, *args: Any, **kwargs: Any) -> Any:
        capture.record(args[0] if args else kwargs.get("context"))
        return unbound(self, *args, **kwargs)

    return cls, dispatch_method


def _has_writable_namespace(app: Any) -> bool:
    if isinstance(app, (types.ModuleType, type)):
        return True
    return hasattr(app, "__dict__") and type(app).__setattr__ is object.__setattr__
