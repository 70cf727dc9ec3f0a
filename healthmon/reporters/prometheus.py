"""Prometheus text exposition of statuses and metric values."""

from __future__ import annotations

import re

_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")


def config(ctx):
    return ctx.Schema({
        "prefix": {"type": str, "default": "healthmon"},
    })


def escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def metric_name(*parts: str) -> str:
    return "_".join(_NAME_RE.sub("_", p) for p in parts if p)


def run(ctx):
    prefix = ctx.options["prefix"]
    server = escape_label(ctx.engine.server_id)
    lines = []

    status_name = metric_name(prefix, "status")
    lines.append(f"# HELP {status_name} Check status (0=PASS, 1=WARN, 2=CRIT, 3=ERROR)")
    lines.append(f"# TYPE {status_name} gauge")
    for r in ctx.responses:
        lines.append(f'{status_name}{{server="{server}",id="{escape_label(r.id)}"}} {r.status.rank}')

    if ctx.metrics:
        value_name = metric_name(prefix, "metric_value")
        lines.append(f"# HELP {value_name} Raw value of each reported metric")
        lines.append(f"# TYPE {value_name} gauge")
        for m in ctx.metrics:
            labels = f'server="{server}",id="{escape_label(m.id)}",unit="{m.unit}"'
            lines.append(f"{value_name}{{{labels}}} {m.value:g}")

    max_name = metric_name(prefix, "max_status")
    lines.append(f"# HELP {max_name} Highest status across all checks")
    lines.append(f"# TYPE {max_name} gauge")
    lines.append(f'{max_name}{{server="{server}"}} {ctx.max_status.rank}')
    return "\n".join(lines) + "\n"
