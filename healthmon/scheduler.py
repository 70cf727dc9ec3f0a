"""Cycle scheduler: runs ``Engine.run_all()`` repeatedly with a pause.

Cycles never overlap; each one (reporters included) completes before the
pause for the next begins.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import Any

from .core.engine import Engine, RunResult

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h|d)?\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(text: str | float | int) -> float:
    """Parse ``"500ms"``, ``"10s"``, ``"5m"``, ``"1h"`` or a bare number of seconds."""
    if isinstance(text, (int, float)):
        return float(text)
    match = _DURATION_RE.match(text)
    if not match:
        raise ValueError(f"Invalid duration {text!r}")
    unit = (match["unit"] or "s").lower()
    return float(match["value"]) * _UNIT_SECONDS[unit]


class CycleScheduler:
    """Run a fixed number of cycles (0 = forever) with a pause in between."""

    def __init__(
        self,
        engine: Engine,
        times: int = 1,
        pause: float = 10.0,
        on_result: Callable[[RunResult], Any] | None = None,
    ) -> None:
        self.engine = engine
        self.times = times
        self.pause = pause
        self.on_result = on_result
        self.run_count = 0
        self._running = False
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> list[RunResult]:
        """Run the configured cycles.

        Returns every result for bounded runs; endless runs (times=0) only
        report through ``on_result``.
        """
        results: list[RunResult] = []
        self._running = True
        self._stop.clear()
        try:
            while not self._stop.is_set():
                result = await self.engine.run_all()
                self.run_count += 1
                if self.times:
                    results.append(result)

                if self.on_result:
                    try:
                        outcome = self.on_result(result)
                        if asyncio.iscoroutine(outcome):
                            await outcome
                    except Exception:
                        logger.exception("Result callback error")

                logger.debug(
                    "Cycle %d%s: %s",
                    self.run_count,
                    f"/{self.times}" if self.times else "",
                    result.max_status.value,
                )
                if self.times and self.run_count >= self.times:
                    break
                if self.pause > 0:
                    try:
                        await asyncio.wait_for(self._stop.wait(), timeout=self.pause)
                    except asyncio.TimeoutError:
                        pass
        finally:
            self._running = False
        return results

    def stop(self) -> None:
        """Ask the loop to finish after the current cycle."""
        self._stop.set()
