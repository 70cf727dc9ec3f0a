"""System load averages."""

from __future__ import annotations

import os

from ..core.thresholds import from_metrics
from ..errors import AvailabilityError


def config(ctx):
    return ctx.Schema({
        f"proc{window}_{level}": {"type": float, "required": False}
        for window in (1, 5, 15)
        for level in ("warn", "crit")
    })


def is_available(ctx):
    if not hasattr(os, "getloadavg"):
        raise AvailabilityError("Load averages are not available on this platform")


def run(ctx):
    options = ctx.options
    averages = os.getloadavg()

    metrics = []
    for window, value in zip((1, 5, 15), averages):
        warn = options.get(f"proc{window}_warn")
        crit = options.get(f"proc{window}_crit")
        metrics.append({
            "id": f"proc{window}",
            "value": round(value, 2),
            "warnValue": f">={warn:g}" if warn else None,
            "critValue": f">={crit:g}" if crit else None,
            "description": f"{window} minute load average",
        })
    metrics.append({"id": "cpus", "value": os.cpu_count() or 1})

    return from_metrics(metrics, summary="System load: " + " ".join(f"{v:.2f}" for v in averages))
