"""Network traffic per interface, one response per interface.

Interface counters are running totals, so each sample is diffed against the
previous one through the engine cache. The first run after a cold cache only
records a baseline.
"""

from __future__ import annotations

import re

import psutil

from ..cache import snapshot_since_last
from ..core.formatting import format_bytes

_LOOPBACK_RE = re.compile(r"^(lo\d*|Loopback.*)$")


def config(ctx):
    return ctx.Schema({
        "interfaces": {"type": str, "default": ".", "help": "Regular expression of interfaces to watch"},
        "include_loopback": {"type": bool, "default": False},
    })


def _counters() -> dict[str, tuple[int, int]]:
    """Map interface name to (bytes received, bytes sent)."""
    return {
        name: (stats.bytes_recv, stats.bytes_sent)
        for name, stats in psutil.net_io_counters(pernic=True).items()
    }


def init(ctx):
    pattern = re.compile(ctx.options["interfaces"])
    ctx.state["interfaces"] = [
        name for name in _counters()
        if pattern.search(name) and (ctx.options["include_loopback"] or not _LOOPBACK_RE.match(name))
    ]
    if not ctx.state["interfaces"]:
        raise ValueError(f"No network interfaces match {ctx.options['interfaces']!r}")


def run(ctx):
    counters = _counters()

    responses = []
    for name in ctx.state["interfaces"]:
        if name not in counters:
            responses.append({"id": name, "status": "WARN", "message": f"Interface {name} disappeared"})
            continue

        rx, tx = counters[name]
        rx_delta = snapshot_since_last(ctx.cache, f"{ctx.id}.{name}.rx", rx)
        tx_delta = snapshot_since_last(ctx.cache, f"{ctx.id}.{name}.tx", tx)
        if rx_delta is None or tx_delta is None:
            responses.append({"id": name, "status": "PASS", "message": f"{name}: collecting baseline"})
            continue

        responses.append({
            "id": name,
            "status": "PASS",
            "message": f"{name}: {format_bytes(rx_delta)} in, {format_bytes(tx_delta)} out since last sample",
            "metrics": [
                {"id": "rx", "unit": "bytes", "value": rx_delta, "description": "Bytes received since last sample"},
                {"id": "tx", "unit": "bytes", "value": tx_delta, "description": "Bytes sent since last sample"},
            ],
        })
    return responses
