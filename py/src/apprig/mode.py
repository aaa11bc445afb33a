from __future__ import annotations

import importlib
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from apprig.errors import ConfigurationError
from apprig.logger import get_logger
from apprig.remote import parse_base_url
from apprig.sanitization import sanitize_log_string

ENV_SERVER = "APPRIG_SERVER"

LOCAL = "local"
REMOTE = "remote"


@dataclass(frozen=True, slots=True)
class Mode:
    kind: str
    app: Any | None = None
    base_url: str = ""

    @property
    def is_local(self) -> bool:
        return self.kind == LOCAL

    @property
    def is_remote(self) -> bool:
        return self.kind == REMOTE


def select_mode(target: Any | None = None, *, environ: Mapping[str, str] | None = None) -> Mode:
    """Resolve the harness mode once.

    A server URL in ``APPRIG_SERVER`` always wins; otherwise ``target`` is
    loaded as the in-process application.
    """
    env = os.environ if environ is None else environ
    server = str(env.get(ENV_SERVER) or "").strip()
    logger = get_logger()

    if server:
        parse_base_url(server)
        logger.debug("apprig: remote mode selected", {"base_url": sanitize_log_string(server)})
        return Mode(kind=REMOTE, base_url=server)

    if target is None or (isinstance(target, str) and not target.strip()):
        raise ConfigurationError("must specify a test app, for example create_harness('myapp.web:app')")

    app = load_application(target)
    logger.debug("apprig: local mode selected", {"app": _describe(app)})
    return Mode(kind=LOCAL, app=app)


def load_application(target: Any) -> Any:
    """Turn an application object or ``"module:attribute"`` identifier into an application.

    Without an attribute the module's ``app`` is used, or the module itself
    when it provides ``handle_request``. Classes and other factories are
    called once with no arguments.
    """
    obj = _import_target(target) if isinstance(target, str) else target

    if isinstance(obj, type) or (callable(obj) and not _is_application(obj)):
        try:
            obj = obj()
        except Exception as exc:  # noqa: BLE001
            raise ConfigurationError(f"application factory {_describe(obj)} failed: {exc}").with_cause(exc) from exc

    if not _is_application(obj):
        raise ConfigurationError(f"{_describe(obj)} is not an application: missing handle_request")
    return obj


def _import_target(identifier: str) -> Any:
    module_name, sep, attr = identifier.strip().partition(":")
    module_name = module_name.strip()
    attr = attr.strip()
    if not module_name or (sep and not attr):
        raise ConfigurationError(f"invalid application identifier {identifier!r}; expected 'module:attribute'")

    try:
        module = importlib.import_module(module_name)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(f"cannot load application module {module_name!r}: {exc}").with_cause(exc) from exc

    if not attr:
        if hasattr(module, "app"):
            return module.app
        return module

    obj: Any = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise ConfigurationError(f"module {module_name!r} has no attribute {attr!r}") from None
    return obj


def _is_application(obj: Any) -> bool:
    return callable(getattr(obj, "handle_request", None))


def _describe(obj: Any) -> str:
    name = getattr(obj, "__qualname__", None) or getattr(obj, "__name__", None) or type(obj).__name__
    return repr(name)
