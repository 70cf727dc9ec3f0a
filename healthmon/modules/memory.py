"""Memory and swap usage."""

from __future__ import annotations

import psutil

from ..core.formatting import format_bytes
from ..core.thresholds import from_metrics


def config(ctx):
    return ctx.Schema({
        "memory": {"type": bool, "default": True},
        "memory_warn_percent": {"type": "percent", "default": 0, "help": "0 disables"},
        "memory_crit_percent": {"type": "percent", "default": 0, "help": "0 disables"},
        "swap": {"type": bool, "default": True},
        "swap_warn_percent": {"type": "percent", "default": 80},
        "swap_crit_percent": {"type": "percent", "default": 90},
    })


def _usage() -> list[tuple[str, str, int, int]]:
    """(option prefix, title, used bytes, total bytes) per memory kind."""
    vm = psutil.virtual_memory()
    swap = psutil.swap_memory()
    return [
        ("memory", "Memory", vm.total - vm.available, vm.total),
        ("swap", "Swap", swap.total - swap.free, swap.total),
    ]


def run(ctx):
    options = ctx.options

    metrics = []
    summaries = []
    for prefix, title, used, total in _usage():
        if not options[prefix] or total == 0:
            continue  # disabled, or no swap configured
        warn = options[f"{prefix}_warn_percent"]
        crit = options[f"{prefix}_crit_percent"]
        metrics.append({
            "id": prefix,
            "unit": "bytes",
            "value": used,
            "valueMax": total,
            "warnValue": f">={warn:g}%" if warn else None,
            "critValue": f">={crit:g}%" if crit else None,
        })
        summaries.append(
            f"{title}: {format_bytes(used)} / {format_bytes(total)} ~ {round(used / total * 100)}%"
        )

    return from_metrics(metrics, summary=", ".join(summaries))
