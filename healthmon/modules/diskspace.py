"""Disk space check for a single mount point."""

from __future__ import annotations

import shutil
import sys

from ..core.formatting import format_bytes
from ..core.status import Status
from ..core.thresholds import status_of
from ..errors import AvailabilityError

UNIX_PLATFORMS = ("linux", "darwin", "freebsd", "openbsd", "sunos")


def config(ctx):
    return ctx.Schema({
        "path": {"type": str, "required": True, "help": "Path on the mount point to check"},
        "mount_alias": {"type": str, "default": "", "help": "Display name for the mount point"},
        "warn_percent": {"type": "percent", "default": 20, "help": "WARN when free space drops below this"},
        "crit_percent": {"type": "percent", "default": 10, "help": "CRIT when free space drops below this"},
    })


def is_available(ctx):
    if not sys.platform.startswith(UNIX_PLATFORMS):
        raise AvailabilityError("Cannot check disk space on non Unix compatible systems")


def run(ctx):
    options = ctx.options
    mount = options["mount_alias"] or options["path"]
    usage = shutil.disk_usage(options["path"])

    used_percent = round(usage.used / usage.total * 100, 1) if usage.total else 0.0
    free_percent = round(100 - used_percent, 1)

    metric = {
        "id": "spaceUsed",
        "unit": "bytes",
        "value": usage.used,
        "valueMax": usage.total,
        "warnValue": f">={100 - options['warn_percent']:g}%",
        "critValue": f">={100 - options['crit_percent']:g}%",
        "description": f"Disk usage at {mount}",
    }
    status = status_of(metric)

    if status == Status.PASS:
        message = (
            f"{format_bytes(usage.used)} / {format_bytes(usage.total)} @ {free_percent}% free "
            f"for {mount} mount point"
        )
    else:
        message = (
            f"Only {format_bytes(usage.free)} ~ {free_percent}% disk remaining - "
            f"{format_bytes(usage.used)} / {format_bytes(usage.total)} @ {used_percent}% used "
            f"for {mount} mount point"
        )

    return {"status": status.value, "message": message, "metric": metric}
