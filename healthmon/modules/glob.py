"""Count files matching one or more glob patterns."""

from __future__ import annotations

import glob

from ..core.thresholds import from_metrics


def config(ctx):
    return ctx.Schema({
        "glob": {"type": list, "required": True, "help": "CSV or list of glob patterns"},
        "warn_number": {"type": int, "default": 1, "min": 0, "help": "WARN below this many matches"},
        "crit_number": {"type": int, "default": 1, "min": 0, "help": "CRIT below this many matches"},
    })


def init(ctx):
    if not ctx.options["glob"]:
        raise ValueError("Must specify at least one glob in `glob` option")


def count_matches(patterns: list[str]) -> int:
    matches = set()
    for pattern in patterns:
        matches.update(glob.glob(pattern, recursive=True))
    return len(matches)


def run(ctx):
    options = ctx.options
    found = count_matches(options["glob"])
    patterns = ", ".join(f'"{p}"' for p in options["glob"])
    return from_metrics(
        [{
            "id": "fileCount",
            "value": found,
            "warnValue": f"<{options['warn_number']}",
            "critValue": f"<{options['crit_number']}",
            "description": f"File count with glob {patterns}",
        }],
        summary=f"Found {found} matches",
    )
