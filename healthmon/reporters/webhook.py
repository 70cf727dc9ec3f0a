"""POST the run results to a webhook when the max status reaches a level.

Works off the ``runAll`` event rather than ``run()``, so it produces no
report output. Repeat alerts are throttled through the engine cache.
"""

from __future__ import annotations

import logging

import httpx

from ..cache import create_throttle, is_throttled
from ..core.events import RunAll
from ..core.status import Status
from ..scheduler import parse_duration

logger = logging.getLogger(__name__)


def config(ctx):
    return ctx.Schema({
        "url": {"type": str, "required": True},
        "min_status": {"type": str, "default": "CRIT", "enum": ["PASS", "WARN", "CRIT", "ERROR"]},
        "throttle": {"type": str, "default": "1h", "help": "Minimum gap between alerts, e.g. 30m"},
        "timeout": {"type": float, "default": 10.0},
    })


def build_payload(event: RunAll) -> dict:
    failing = [r for r in event.responses if r.status != Status.PASS]
    return {
        "server": {"id": event.engine.server_id, "title": event.engine.server_title},
        "maxStatus": event.max_status.value,
        "summary": f"{len(failing)} of {len(event.responses)} checks not passing",
        "responses": [r.to_dict(decorate=False) for r in failing],
    }


def init(ctx):
    options = ctx.options
    min_status = Status.parse(options["min_status"])
    throttle_seconds = parse_duration(options["throttle"])
    throttle_key = f"webhook-{ctx.id}"
    cache = ctx.cache

    async def on_run_all(event: RunAll) -> None:
        if event.max_status.rank < min_status.rank:
            return
        until = is_throttled(cache, throttle_key)
        if until:
            logger.debug("Webhook %s throttled until %s", ctx.id, until.isoformat())
            return

        async with httpx.AsyncClient(timeout=options["timeout"]) as client:
            resp = await client.post(options["url"], json=build_payload(event))
        if resp.status_code >= 400:
            logger.warning("Webhook %s failed: %d %s", ctx.id, resp.status_code, resp.text[:200])
            return
        logger.info("Webhook %s sent (max status %s)", ctx.id, event.max_status.value)
        if throttle_seconds:
            create_throttle(cache, throttle_key, throttle_seconds)

    ctx.state["unsubscribe"] = ctx.engine.on(RunAll, on_run_all)


def shutdown(ctx):
    unsubscribe = ctx.state.pop("unsubscribe", None)
    if unsubscribe is not None:
        unsubscribe()
