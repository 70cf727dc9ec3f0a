"""healthmon: pluggable health checks with a concurrent plugin lifecycle."""

from .core.engine import Engine, RunResult
from .core.response import Metric, Response
from .core.status import Status

__all__ = ["Engine", "Metric", "Response", "RunResult", "Status"]
__version__ = "0.1.0"
