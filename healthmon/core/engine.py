"""Run-cycle coordinator.

One ``Engine`` owns its plugin registries, event bus and cache. A cycle is:
await readiness -> run every ready module concurrently -> normalise and
aggregate -> run every ready reporter concurrently -> emit ``runAll``.
Module and reporter failures are isolated per plugin and never abort the
cycle.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..config import Settings, settings as default_settings
from ..errors import ConfigurationError, PluginRuntimeError, RegistrationError
from .events import EngineEvent, EventBus, PreRunAll, PreShutdown, RunAll, Shutdown
from .lifecycle import PluginManager
from .plugin import Capability, PluginDescriptor, PluginKind
from .response import Metric, Response, error_response, normalize
from .status import Status
from .thresholds import rollup_run

if TYPE_CHECKING:
    from ..cache import Cache

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Aggregate of one run cycle."""

    responses: list[Response]
    metrics: list[Metric]
    max_status: Status
    reports: dict[str, Any] = field(default_factory=dict)
    reporter_errors: dict[str, str] = field(default_factory=dict)


class Engine:
    """Loads modules + reporters and runs check cycles across them."""

    def __init__(self, settings: Settings | None = None, cache: Cache | None = None) -> None:
        self.settings = settings or default_settings
        self.server_id = self.settings.server_id
        self.server_title = self.settings.server_title or self.settings.server_id
        self.events = EventBus()
        self.plugins = PluginManager(self, max_workers=self.settings.executor_workers)
        self._cache = cache
        self._owns_cache = cache is None
        self._cache_lock = threading.Lock()

    # -- Registration -------------------------------------------------------

    def use(self, module: Any, options: Mapping[str, Any] | None = None) -> Engine:
        """Install a module by name, file path, dotted path or object."""
        self.plugins.register(PluginKind.MODULE, module, options)
        return self

    def reporter(self, reporter: Any, options: Mapping[str, Any] | None = None) -> Engine:
        """Install a reporter; same reference rules as ``use()``."""
        self.plugins.register(PluginKind.REPORTER, reporter, options)
        return self

    def remove_module(self, module_id: str) -> Engine:
        self.plugins.remove(PluginKind.MODULE, module_id)
        return self

    def remove_reporter(self, reporter_id: str) -> Engine:
        self.plugins.remove(PluginKind.REPORTER, reporter_id)
        return self

    @property
    def modules(self) -> list[PluginDescriptor]:
        return list(self.plugins.modules)

    @property
    def reporters(self) -> list[PluginDescriptor]:
        return list(self.plugins.reporters)

    def load_from_config(
        self,
        config: Mapping[str, Any],
        modules: bool = True,
        reporters: bool = True,
    ) -> Engine:
        """Register every enabled entry of a ``{"modules": ..., "reporters": ...}`` mapping.

        Each entry key is the default plugin id; the ``module`` / ``reporter``
        key names the plugin reference and defaults to the entry key.
        """
        sections = [(PluginKind.MODULE, "modules", modules), (PluginKind.REPORTER, "reporters", reporters)]
        for kind, section, wanted in sections:
            if not wanted:
                continue
            if section not in config:
                raise ConfigurationError(f"No `{section}` key found in config to load")
            for key, entry in (config[section] or {}).items():
                options = dict(entry or {})
                if not options.pop("enabled", True):
                    logger.debug("Skipping disabled %s:%s", kind.label, key)
                    continue
                reference = options.pop(kind.value, None) or key
                options.setdefault("id", key)
                self.plugins.register(kind, reference, options)
        return self

    def on(self, event: type[EngineEvent] | str, handler: Callable[[Any], Any]) -> Callable[[], None]:
        """Subscribe to an engine event, returning an unsubscribe function."""
        return self.events.subscribe(event, handler)

    @property
    def cache(self) -> Cache:
        with self._cache_lock:
            if self._cache is None:
                from ..cache import Cache

                self._cache = Cache(self.settings.cache_path)
            return self._cache

    # -- Execution ----------------------------------------------------------

    async def await_ready(self) -> None:
        await self.plugins.await_ready()

    async def run(self, module_id: str) -> Response | list[Response]:
        """Run a single module and return its normalised response(s)."""
        await self.await_ready()
        descriptor = self.plugins.modules.get(module_id)
        if descriptor is None or not descriptor.is_ready:
            raise RegistrationError(f"Unknown module {module_id!r}", context={"id": module_id})
        logger.debug("Run module %s", module_id)
        try:
            raw = await self.plugins.call(descriptor, Capability.RUN)
        except Exception as e:
            raise PluginRuntimeError(
                f"{descriptor.label}.run() failed: {e}", context={"plugin_id": module_id},
            ) from e
        return normalize(raw, module_id)

    async def run_all(self) -> RunResult:
        """Run every ready module, aggregate, and feed every ready reporter."""
        logger.debug("RunAll")
        await self.await_ready()
        await self.events.emit(PreRunAll(engine=self))

        modules = self.plugins.modules.ready()
        batches = await asyncio.gather(*(self._execute_module(d) for d in modules))
        responses = [r for batch in batches for r in batch]
        metrics = [m for r in responses for m in r.metrics]
        max_status = rollup_run(responses)

        reporters = [d for d in self.plugins.reporters.ready() if d.has(Capability.RUN)]
        outcomes = await asyncio.gather(
            *(self._execute_reporter(d, responses, metrics, max_status) for d in reporters)
        )

        result = RunResult(responses=responses, metrics=metrics, max_status=max_status)
        for d, (output, error) in zip(reporters, outcomes):
            if error is not None:
                result.reporter_errors[d.id] = error
            elif output:
                result.reports[d.id] = output

        await self.events.emit(RunAll(
            engine=self,
            responses=responses,
            metrics=metrics,
            reports=result.reports,
            max_status=max_status,
        ))
        logger.debug(
            "Finished RunAll: %d responses, max status %s, %d non-empty reports",
            len(responses), max_status.value, len(result.reports),
        )
        return result

    async def _execute_module(self, d: PluginDescriptor) -> list[Response]:
        try:
            raw = await self.plugins.call(d, Capability.RUN)
            normalized = normalize(raw, d.id)
        except Exception as e:
            logger.warning("%s run failed: %s", d.label, e)
            return [error_response(d.id, e)]
        logger.debug("Finished running %s", d.label)
        return normalized if isinstance(normalized, list) else [normalized]

    async def _execute_reporter(
        self,
        d: PluginDescriptor,
        responses: list[Response],
        metrics: list[Metric],
        max_status: Status,
    ) -> tuple[Any, str | None]:
        try:
            output = await self.plugins.call(
                d,
                Capability.RUN,
                responses=list(responses),
                metrics=list(metrics),
                max_status=max_status,
            )
        except Exception as e:
            logger.warning("%s run failed: %s", d.label, e)
            return None, str(e) or type(e).__name__
        logger.debug("Finished running %s", d.label)
        return output, None

    async def shutdown(self) -> None:
        """Call shutdown() on every plugin, each independently of the others."""
        logger.debug("Shutdown")
        await self.events.emit(PreShutdown(engine=self))

        targets = [d for d in (*self.plugins.modules, *self.plugins.reporters) if d.has(Capability.SHUTDOWN)]
        results = await asyncio.gather(
            *(self.plugins.call(d, Capability.SHUTDOWN) for d in targets),
            return_exceptions=True,
        )
        for d, outcome in zip(targets, results):
            if isinstance(outcome, Exception):
                logger.warning("%s shutdown failed: %s", d.label, outcome)

        await self.events.emit(Shutdown(engine=self))
        self.plugins.close()
        with self._cache_lock:
            if self._cache is not None and self._owns_cache:
                self._cache.cleanup_expired()
                self._cache.close()
                self._cache = None
        logger.debug("Shutdown complete")
