"""Core engine: plugin lifecycle, response normalisation, thresholds, events."""

from .engine import Engine, RunResult
from .events import PreRunAll, PreShutdown, RunAll, Shutdown
from .plugin import Capability, Injector, LifecycleStatus, PluginKind
from .response import Metric, Response, normalize
from .schema import Schema
from .status import Status, max_status

__all__ = [
    "Capability",
    "Engine",
    "Injector",
    "LifecycleStatus",
    "Metric",
    "PluginKind",
    "PreRunAll",
    "PreShutdown",
    "Response",
    "RunAll",
    "RunResult",
    "Schema",
    "Shutdown",
    "Status",
    "max_status",
    "normalize",
]
