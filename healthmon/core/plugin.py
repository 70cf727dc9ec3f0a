"""Plugin contract: kinds, lifecycle states, capabilities and loading.

A plugin is any object (usually a Python module) exposing some of the
functions ``config``, ``is_available``, ``init``, ``run`` and ``shutdown``.
Each is called with a single ``Injector`` argument and may be a plain
function or a coroutine function.
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.util
import logging
import re
import sys
from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from pathlib import Path
from typing import Any, ClassVar

from ..errors import RegistrationError
from .schema import Schema
from .status import Status

logger = logging.getLogger(__name__)

_BARE_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


class PluginKind(str, Enum):
    MODULE = "module"
    REPORTER = "reporter"

    @property
    def package(self) -> str:
        return "healthmon.modules" if self is PluginKind.MODULE else "healthmon.reporters"

    @property
    def label(self) -> str:
        return self.value.upper()


class LifecycleStatus(str, Enum):
    REGISTERED = "registered"
    LOADING = "loading"
    CONFIG_APPLIED = "config_applied"
    AVAILABILITY_CHECKED = "availability_checked"
    INITIALIZED = "initialized"
    READY = "ready"
    REMOVED = "removed"
    FAILED = "failed"


class Capability(Flag):
    NONE = 0
    CONFIG = auto()
    IS_AVAILABLE = auto()
    INIT = auto()
    RUN = auto()
    SHUTDOWN = auto()

    @property
    def function_name(self) -> str:
        return (self.name or "").lower()

    @classmethod
    def detect(cls, impl: Any) -> Capability:
        found = cls.NONE
        for cap in (cls.CONFIG, cls.IS_AVAILABLE, cls.INIT, cls.RUN, cls.SHUTDOWN):
            if callable(getattr(impl, cap.function_name, None)):
                found |= cap
        return found

    def names(self) -> list[str]:
        return [
            cap.function_name
            for cap in (Capability.CONFIG, Capability.IS_AVAILABLE, Capability.INIT,
                        Capability.RUN, Capability.SHUTDOWN)
            if cap in self
        ]


@dataclass
class Injector:
    """Context handed to every plugin capability call."""

    Schema: ClassVar[type[Schema]] = Schema

    engine: Any
    id: str
    options: dict[str, Any]
    state: dict[str, Any]
    # Reporter runs only
    responses: list[Any] | None = None
    metrics: list[Any] | None = None
    max_status: Status | None = None

    @property
    def cache(self) -> Any:
        return self.engine.cache


@dataclass
class PluginDescriptor:
    """Registry entry for one module or reporter."""

    id: str
    kind: PluginKind
    reference: str
    impl: Any
    options: dict[str, Any] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)
    capabilities: Capability = Capability.NONE
    status: LifecycleStatus = LifecycleStatus.REGISTERED
    error: BaseException | None = None
    ready_task: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def label(self) -> str:
        return f"{self.kind.label}:{self.id}"

    @property
    def is_ready(self) -> bool:
        return self.status == LifecycleStatus.READY

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def injector(self, engine: Any, **extra: Any) -> Injector:
        return Injector(engine=engine, id=self.id, options=self.options, state=self.state, **extra)


# ── Resolution ───────────────────────────────────────────────────────────────


def resolve(kind: PluginKind, reference: Any, plugin_id: str | None = None) -> tuple[str, Any, str]:
    """Resolve a plugin reference to ``(id, implementation, label)``.

    - A bare alphanumeric name loads ``healthmon.modules.<name>`` (or reporters).
    - A string with a path separator or a ``.py`` suffix loads that file.
    - Any other dotted string is imported as a module path.
    - Non-string objects are used as the implementation directly.
    """
    if not isinstance(reference, str):
        default_id = getattr(reference, "id", None)
        if not isinstance(default_id, str) or not default_id:
            name = getattr(reference, "__name__", None)
            default_id = name.rsplit(".", 1)[-1] if isinstance(name, str) else None
        plugin_id = plugin_id or default_id
        if not plugin_id:
            raise RegistrationError(
                f"Cannot determine an id for {kind.value} {reference!r}, pass options={{'id': ...}}",
                context={"kind": kind.value},
            )
        return plugin_id, reference, f"<{type(reference).__name__}>"

    if _BARE_NAME_RE.match(reference):
        module_name = f"{kind.package}.{reference.lower()}"
        return plugin_id or reference, _import(kind, module_name, reference), module_name

    if "/" in reference or "\\" in reference or reference.endswith(".py"):
        path = Path(reference).expanduser()
        return plugin_id or path.stem, _import_file(kind, path, reference), str(path)

    return plugin_id or reference.rsplit(".", 1)[-1], _import(kind, reference, reference), reference


def _import(kind: PluginKind, module_name: str, reference: str) -> Any:
    try:
        return importlib.import_module(module_name)
    except ImportError as e:
        raise RegistrationError(
            f"Cannot load {kind.value} {reference!r}: {e}",
            context={"kind": kind.value, "reference": reference},
        ) from e
    except Exception as e:
        raise RegistrationError(
            f"Error importing {kind.value} {reference!r}: {e}",
            context={"kind": kind.value, "reference": reference},
        ) from e


def _import_file(kind: PluginKind, path: Path, reference: str) -> Any:
    if not path.is_file():
        raise RegistrationError(
            f"{kind.value.capitalize()} file not found: {reference}",
            context={"kind": kind.value, "reference": reference},
        )
    module_name = f"healthmon_plugins.{kind.value}.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RegistrationError(
            f"Cannot load {kind.value} from {reference}",
            context={"kind": kind.value, "reference": reference},
        )
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise RegistrationError(
            f"Error importing {kind.value} {reference}: {e}",
            context={"kind": kind.value, "reference": reference},
        ) from e
    logger.debug("Loaded %s plugin from %s", kind.value, path)
    return module
