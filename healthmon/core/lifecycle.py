"""Plugin lifecycle manager: registration, load pipeline and readiness barrier.

Every registered plugin gets its own asyncio task running the pipeline
config -> is_available -> init -> ready. Pipelines of different plugins run
concurrently and may finish in any order; ``await_ready()`` is the barrier
that waits for all of them.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from ..errors import ConfigurationError, HealthmonError, LifecycleError, RegistrationError
from .plugin import Capability, LifecycleStatus, PluginDescriptor, PluginKind, resolve
from .registry import PluginRegistry
from .schema import Schema

logger = logging.getLogger(__name__)

# Separators used to build response and metric ids
_RESERVED_ID_CHARS = (".", "#")


class PluginManager:
    """Owns the module and reporter registries of one engine."""

    def __init__(self, engine: Any, max_workers: int = 4) -> None:
        self.engine = engine
        self.modules = PluginRegistry(PluginKind.MODULE)
        self.reporters = PluginRegistry(PluginKind.REPORTER)
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None

    def registry(self, kind: PluginKind) -> PluginRegistry:
        return self.modules if kind is PluginKind.MODULE else self.reporters

    # -- Registration -------------------------------------------------------

    def register(self, kind: PluginKind, reference: Any, options: Mapping[str, Any] | None = None) -> str:
        """Load a plugin, validate its capabilities and start its pipeline.

        Raises RegistrationError synchronously for unresolvable references,
        missing mandatory capabilities and duplicate ids.
        """
        options = dict(options or {})
        registry = self.registry(kind)
        if options.get("id") and options["id"] in registry:
            raise RegistrationError(
                f"{kind.value.capitalize()} id {options['id']!r} already in use",
                context={"kind": kind.value, "id": options["id"]},
            )

        plugin_id, impl, label = resolve(kind, reference, options.get("id"))
        if not plugin_id or any(c in plugin_id for c in _RESERVED_ID_CHARS):
            raise RegistrationError(
                f"Invalid {kind.value} id {plugin_id!r}: ids must be non-empty and cannot contain "
                + " or ".join(repr(c) for c in _RESERVED_ID_CHARS),
                context={"kind": kind.value, "id": plugin_id},
            )
        options["id"] = plugin_id
        capabilities = Capability.detect(impl)

        if kind is PluginKind.MODULE and Capability.RUN not in capabilities:
            raise RegistrationError(
                f"Module {plugin_id!r} does not have a run() function",
                context={"kind": kind.value, "id": plugin_id},
            )
        if kind is PluginKind.REPORTER and not capabilities & (Capability.INIT | Capability.RUN):
            raise RegistrationError(
                f"Reporter {plugin_id!r} does not have either an init() or run() function",
                context={"kind": kind.value, "id": plugin_id},
            )

        descriptor = PluginDescriptor(
            id=plugin_id,
            kind=kind,
            reference=label,
            impl=impl,
            options=options,
            capabilities=capabilities,
        )
        registry.add(descriptor)
        logger.debug("Installing %s (%s) with %s", descriptor.label, label, options)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None  # started by the next await_ready()
        if loop is not None:
            descriptor.ready_task = loop.create_task(
                self._pipeline(descriptor), name=f"load-{kind.value}-{plugin_id}",
            )
        return plugin_id

    def remove(self, kind: PluginKind, plugin_id: str) -> None:
        """Drop a plugin from the active set; unknown ids are ignored."""
        descriptor = self.registry(kind).remove(plugin_id)
        if descriptor is not None:
            descriptor.status = LifecycleStatus.REMOVED
            logger.debug("Removed %s", descriptor.label)

    def get(self, kind: PluginKind, plugin_id: str) -> PluginDescriptor | None:
        return self.registry(kind).get(plugin_id)

    # -- Readiness ----------------------------------------------------------

    async def await_ready(self) -> None:
        """Wait for every registered pipeline to settle.

        Raises the first ConfigurationError / LifecycleError recorded, in
        registration order (modules first). Failed plugins keep failing the
        barrier until they are removed.
        """
        loop = asyncio.get_running_loop()
        descriptors = [*self.modules, *self.reporters]
        pending: list[asyncio.Task[None]] = []

        for d in descriptors:
            task = d.ready_task
            stale = task is not None and (
                task.cancelled() or (not task.done() and task.get_loop() is not loop)
            )
            if task is None or stale:
                d.status = LifecycleStatus.REGISTERED
                task = d.ready_task = loop.create_task(
                    self._pipeline(d), name=f"load-{d.kind.value}-{d.id}",
                )
            if not task.done():
                pending.append(task)

        if pending:
            await asyncio.wait(pending)

        failed = [d for d in descriptors if d.status == LifecycleStatus.FAILED]
        if failed:
            raise failed[0].error  # type: ignore[misc]
        logger.debug("All modules + reporters loaded")

    # -- Pipeline -----------------------------------------------------------

    async def _pipeline(self, d: PluginDescriptor) -> None:
        d.status = LifecycleStatus.LOADING
        try:
            await self._apply_config(d)
            if not self._advance(d, LifecycleStatus.CONFIG_APPLIED):
                return

            if not await self._check_available(d):
                return
            if not self._advance(d, LifecycleStatus.AVAILABILITY_CHECKED):
                return

            await self._init(d)
            if not self._advance(d, LifecycleStatus.INITIALIZED):
                return
        except Exception as e:
            if not isinstance(e, HealthmonError):
                e = LifecycleError(f"Loading {d.label} - {e}", context={"plugin_id": d.id})
            d.error = e
            d.status = LifecycleStatus.FAILED
            logger.error("%s failed to load: %s", d.label, e)
            return

        self._advance(d, LifecycleStatus.READY)
        logger.debug("%s ready", d.label)

    def _advance(self, d: PluginDescriptor, status: LifecycleStatus) -> bool:
        if d.status == LifecycleStatus.REMOVED:
            return False
        d.status = status
        return True

    async def _apply_config(self, d: PluginDescriptor) -> None:
        if not d.has(Capability.CONFIG):
            return
        try:
            result = await self.call(d, Capability.CONFIG)
            if result is None:
                return
            if isinstance(result, Mapping):
                result = Schema(result)
            if not isinstance(result, Schema):
                raise ConfigurationError(
                    f"Unknown response from {d.label}.config(): {type(result).__name__}",
                )
            d.options = result.apply(d.options)
        except ConfigurationError as e:
            raise ConfigurationError(
                f"Loading {d.label}.config() - {e.message}",
                context={**e.context, "plugin_id": d.id},
            ) from e
        except Exception as e:
            raise ConfigurationError(
                f"Loading {d.label}.config() - {e}", context={"plugin_id": d.id},
            ) from e

    async def _check_available(self, d: PluginDescriptor) -> bool:
        if not d.has(Capability.IS_AVAILABLE):
            return True
        try:
            available = await self.call(d, Capability.IS_AVAILABLE)
        except Exception as e:
            logger.info("%s is not available, removing: %s", d.label, e)
            self.remove(d.kind, d.id)
            return False
        if available is False:
            logger.info("%s is not available, removing", d.label)
            self.remove(d.kind, d.id)
            return False
        return True

    async def _init(self, d: PluginDescriptor) -> None:
        if not d.has(Capability.INIT):
            return
        try:
            await self.call(d, Capability.INIT)
        except Exception as e:
            raise LifecycleError(
                f"{d.label}.init() failed: {e}", context={"plugin_id": d.id},
            ) from e

    # -- Capability dispatch ------------------------------------------------

    async def call(self, d: PluginDescriptor, capability: Capability, **extra: Any) -> Any:
        """Invoke a plugin capability with a fresh Injector.

        Coroutine functions are awaited on the loop; plain functions run in
        the engine's thread pool so blocking checks never stall other plugins.
        """
        func = getattr(d.impl, capability.function_name)
        ctx = d.injector(self.engine, **extra)
        if inspect.iscoroutinefunction(func):
            return await func(ctx)

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(self._get_executor(), func, ctx)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="healthmon-plugin",
            )
        return self._executor

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
