"""ICMP round-trip time to a remote host via the system ``ping`` binary."""

from __future__ import annotations

import re
import shutil
import subprocess
import sys

from ..core.thresholds import from_metrics
from ..errors import AvailabilityError

# "time=12.3 ms" (Linux, macOS) or "time<1ms" (Windows)
_REPLY_RE = re.compile(r"time[=<]\s*(?P<ms>\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)


def config(ctx):
    return ctx.Schema({
        "host": {"type": str, "default": "8.8.8.8"},
        "host_alias": {"type": str, "help": "Name shown in messages instead of host"},
        "repeat": {"type": int, "default": 3, "min": 1, "help": "Number of pings to send"},
        "warn_timeout": {"type": int, "default": 100, "min": 1, "help": "Average ms above which to WARN"},
        "crit_timeout": {"type": int, "default": 500, "min": 1, "help": "Average ms above which to CRIT"},
    })


def is_available(ctx):
    if shutil.which("ping") is None:
        raise AvailabilityError("No `ping` executable found on PATH")


def ping_command(host: str, repeat: int) -> list[str]:
    count_flag = "-n" if sys.platform == "win32" else "-c"
    return ["ping", count_flag, str(repeat), host]


def parse_replies(output: str) -> list[float]:
    """Round-trip times in ms, one per reply line."""
    return [float(m["ms"]) for m in _REPLY_RE.finditer(output)]


def run(ctx):
    options = ctx.options
    host = options["host"]
    name = options["host_alias"] or host
    # One second per echo plus the worst acceptable reply time
    timeout = options["repeat"] * (1 + options["crit_timeout"] / 1000) + 5

    try:
        result = subprocess.run(
            ping_command(host, options["repeat"]),
            capture_output=True,
            text=True,
            timeout=timeout,
            encoding="utf-8",
            errors="replace",
        )
    except subprocess.TimeoutExpired:
        return {"status": "CRIT", "message": f"Ping to {name} timed out after {timeout:g}s"}

    replies = parse_replies(result.stdout)
    if not replies:
        return {"status": "CRIT", "message": f"Server {name} is down or non-responsive"}

    avg = round(sum(replies) / len(replies), 3)
    metric = {
        "id": "avgResponseTime",
        "unit": "timeMs",
        "value": avg,
        "warnValue": f">{options['warn_timeout']}",
        "critValue": f">{options['crit_timeout']}",
        "description": f"Average ping time to {host}",
    }
    return from_metrics(
        [metric],
        summary=f"Ping average to {name} AVG={avg:g} (MIN={min(replies):g} / MAX={max(replies):g})",
    )
