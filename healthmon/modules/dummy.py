"""Dummy check which returns the status / message it was configured with."""

from __future__ import annotations


def config(ctx):
    return ctx.Schema({
        "status": {"type": str, "default": "PASS", "enum": ["PASS", "WARN", "CRIT", "ERROR"]},
        "message": {"type": str, "default": "Test message"},
        "times": {"type": int, "default": 1, "min": 1, "help": "Number of responses to return"},
    })


def run(ctx):
    options = ctx.options
    item = {"status": options["status"], "message": options["message"]}
    if options["times"] == 1:
        return item
    return [dict(item) for _ in range(options["times"])]
