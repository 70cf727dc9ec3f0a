"""Passthrough reporter, mostly useful in tests and embedding."""


def config(ctx):
    return ctx.Schema({
        "type": {"type": str, "default": "responses", "enum": ["responses", "metrics"]},
    })


def run(ctx):
    if ctx.options["type"] == "metrics":
        return ctx.metrics
    return ctx.responses
