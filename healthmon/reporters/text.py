"""Plain text summary: failures first, then everything else."""

from __future__ import annotations

from ..core.status import Status

FAILING = (Status.CRIT, Status.ERROR)


def config(ctx):
    return ctx.Schema({
        "header": {"type": str, "default": ""},
        "footer": {"type": str, "default": ""},
        "summary": {"type": bool, "default": True, "help": "Append a pass/fail count line"},
    })


def summary_line(fails: int, passes: int) -> str | None:
    total = fails + passes
    if fails == 0 and passes > 1:
        return f"All {passes} tests passing"
    if fails and passes:
        return (
            f"{fails} tests failing, {passes} succeeding out of {total}"
            f" ~ {round(passes / total * 100)}%"
        )
    if fails > 1:
        return f"All {fails} tests failing"
    return None


def run(ctx):
    options = ctx.options
    fails = [r for r in ctx.responses if r.status in FAILING]
    passes = [r for r in ctx.responses if r.status not in FAILING]

    lines = ["HEALTH:FAIL" if fails else "HEALTH:OK"]
    if options["header"]:
        lines.append(options["header"])
    lines.append("")
    lines += [f"{r.status.value}: {r.id}: {r.message}" for r in fails]
    if fails and passes:
        lines += ["", "-----", ""]
    lines += [f"{r.status.value}: {r.id}: {r.message}" for r in passes]

    if options["summary"]:
        summary = summary_line(len(fails), len(passes))
        if summary:
            lines += ["", summary]
    if options["footer"]:
        lines.append(options["footer"])
    return "\n".join(lines)
