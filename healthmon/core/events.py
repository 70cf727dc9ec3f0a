"""Typed lifecycle events emitted by the engine.

Handlers subscribe per event class and receive the event payload; they may
be plain callables or coroutine functions.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .status import Status

logger = logging.getLogger(__name__)


@dataclass
class EngineEvent:
    engine: Any

    name: str = field(default="", init=False)


@dataclass
class PreRunAll(EngineEvent):
    name: str = field(default="preRunAll", init=False)


@dataclass
class RunAll(EngineEvent):
    responses: list[Any] = field(default_factory=list)
    metrics: list[Any] = field(default_factory=list)
    reports: dict[str, Any] = field(default_factory=dict)
    max_status: Status = Status.PASS
    name: str = field(default="runAll", init=False)


@dataclass
class PreShutdown(EngineEvent):
    name: str = field(default="preShutdown", init=False)


@dataclass
class Shutdown(EngineEvent):
    name: str = field(default="shutdown", init=False)


EVENT_TYPES: dict[str, type[EngineEvent]] = {
    "preRunAll": PreRunAll,
    "runAll": RunAll,
    "preShutdown": PreShutdown,
    "shutdown": Shutdown,
}

E = TypeVar("E", bound=EngineEvent)
Handler = Callable[[Any], Any]


class EventBus:
    """Per-event-type subscriber lists with ordered, awaited delivery."""

    def __init__(self) -> None:
        self._handlers: dict[type[EngineEvent], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[E] | str, handler: Callable[[E], Any]) -> Callable[[], None]:
        """Register ``handler`` and return a function that unsubscribes it."""
        if isinstance(event_type, str):
            try:
                event_type = EVENT_TYPES[event_type]
            except KeyError:
                raise ValueError(f"Unknown event {event_type!r}") from None
        handlers = self._handlers[event_type]
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def emit(self, event: EngineEvent) -> None:
        for handler in list(self._handlers.get(type(event), [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Event handler error for %s", event.name)

    def handler_count(self, event_type: type[EngineEvent]) -> int:
        return len(self._handlers.get(event_type, []))
