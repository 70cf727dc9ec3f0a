"""Serialise responses (or metrics) as JSON text."""

from __future__ import annotations

import json


def config(ctx):
    return ctx.Schema({
        "indent": {"type": int, "default": 2, "min": 0, "help": "0 for compact output"},
        "decorate": {"type": bool, "default": True, "help": "Include derived metric fields"},
        "type": {"type": str, "default": "responses", "enum": ["responses", "metrics"]},
    })


def run(ctx):
    options = ctx.options
    if options["type"] == "metrics":
        data = [m.decorate() if options["decorate"] else m.model_dump(by_alias=True, exclude_none=True)
                for m in ctx.metrics]
    else:
        data = [r.to_dict(decorate=options["decorate"]) for r in ctx.responses]

    if not data:
        return None
    return json.dumps(data, indent=options["indent"] or None, default=str)
