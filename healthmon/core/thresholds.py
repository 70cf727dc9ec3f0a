"""Threshold expressions and severity rollups.

An expression looks like ``>=90%``: a comparator (``<``, ``>`` or ``=``),
an optional ``=`` for inclusive comparison and a number, optionally marked
as a percentage of the metric's ``value_max``.

Everything here is pure so the aggregation step can be tested without
running any plugin.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Iterable, NamedTuple

from ..errors import ConfigurationError
from .status import Status, max_status

_EXPR_RE = re.compile(
    r"^\s*(?P<sign>[<>=])(?P<eq>=)?\s*(?P<value>-?\d+(?:\.\d+)?)\s*(?P<percent>%)?\s*$"
)


class Threshold(NamedTuple):
    sign: str
    inclusive: bool
    value: float
    percent: bool
    source: str

    @property
    def comparator(self) -> str:
        if self.sign == "=":
            return "="
        return self.sign + ("=" if self.inclusive else "")

    def operand(self, value_max: float | None = None) -> float:
        """Resolve the numeric operand, scaling percentages by ``value_max``."""
        if not self.percent:
            return self.value
        if value_max is None:
            raise ConfigurationError(
                f"Cannot evaluate percentage expression {self.source!r} without a valueMax",
                context={"expression": self.source},
            )
        return value_max * (self.value / 100)

    def matches(self, value: float, value_max: float | None = None) -> bool:
        operand = self.operand(value_max)
        if self.sign == "=":
            return value == operand
        if self.sign == "<":
            return value <= operand if self.inclusive else value < operand
        return value >= operand if self.inclusive else value > operand


@lru_cache(maxsize=512)
def parse_expression(expression: str) -> Threshold:
    """Parse a threshold expression, raising ConfigurationError if malformed."""
    match = _EXPR_RE.match(expression) if isinstance(expression, str) else None
    if not match:
        raise ConfigurationError(
            f"Cannot evaluate expression {expression!r}",
            context={"expression": expression},
        )
    return Threshold(
        sign=match["sign"],
        inclusive=bool(match["eq"]),
        value=float(match["value"]),
        percent=bool(match["percent"]),
        source=expression,
    )


def evaluate(value: float, expression: str, value_max: float | None = None) -> bool:
    """Return whether ``value`` satisfies ``expression``."""
    return parse_expression(expression).matches(value, value_max)


def _get(metric: Any, name: str, alias: str | None = None) -> Any:
    # Accept both Metric models and raw plugin dicts (camelCase or snake_case)
    if isinstance(metric, dict):
        if name in metric:
            return metric[name]
        return metric.get(alias) if alias else None
    return getattr(metric, name, None)


def status_of(metric: Any) -> Status:
    """Derive a metric's status: CRIT wins over WARN, no thresholds means PASS."""
    value = _get(metric, "value")
    value_max = _get(metric, "value_max", "valueMax")
    crit = _get(metric, "crit_value", "critValue")
    warn = _get(metric, "warn_value", "warnValue")

    if value is None:
        return Status.PASS
    if crit and evaluate(value, crit, value_max):
        return Status.CRIT
    if warn and evaluate(value, warn, value_max):
        return Status.WARN
    return Status.PASS


def rollup_response(metrics: Iterable[Any]) -> Status:
    """Worst metric status, for plugins that derive their own response status."""
    return max_status(status_of(m) for m in metrics)


def rollup_run(responses: Iterable[Any]) -> Status:
    """Worst response status across a run; an empty run is PASS."""
    return max_status(_get(r, "status") for r in responses)


_DESCRIBE = {
    "=": "is at",
    "<": "is below",
    "<=": "is at or below",
    ">": "is above",
    ">=": "is at or above",
}


def describe_breach(metric: Any, status: Status) -> str:
    """Human sentence explaining why ``metric`` is at ``status``."""
    metric_id = _get(metric, "id") or "metric"
    expression = _get(metric, "crit_value", "critValue") if status == Status.CRIT \
        else _get(metric, "warn_value", "warnValue")
    if not expression:
        return f"{metric_id} has an unknown value"

    threshold = parse_expression(expression)
    level = "critical" if status == Status.CRIT else "warning"
    operand = f"{threshold.value:g}" + ("%" if threshold.percent else "")
    return f"{metric_id} {_DESCRIBE[threshold.comparator]} {level} value {operand}"


def from_metrics(metrics: list[Any], summary: str | None = None, **overrides: Any) -> dict[str, Any]:
    """Build a raw response record whose status is derived from ``metrics``.

    ``summary`` replaces the default passing message and prefixes the breach
    list otherwise. ``overrides`` are merged last.
    """
    status = rollup_response(metrics)
    if status == Status.PASS:
        message = summary or "Tests passing"
    else:
        breaches = [describe_breach(m, status) for m in metrics if status_of(m) == status]
        message = _list_and(breaches)
        if summary:
            message = f"{summary} - {message}"

    return {
        "status": status.value,
        "message": message,
        "metrics": list(metrics),
        **overrides,
    }


def _list_and(items: list[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    return ", ".join(items[:-1]) + " and " + items[-1]
