"""Severity levels shared by responses and metrics."""

from __future__ import annotations

from enum import Enum


class Status(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    CRIT = "CRIT"
    ERROR = "ERROR"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @classmethod
    def parse(cls, value: str | Status) -> Status:
        """Coerce a case-insensitive status name, raising ValueError if unknown."""
        if isinstance(value, Status):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown status {value!r}") from None


# ERROR outranks CRIT: the check itself could not execute.
_RANK = {Status.PASS: 0, Status.WARN: 1, Status.CRIT: 2, Status.ERROR: 3}


def max_status(statuses) -> Status:
    """Return the most severe status in ``statuses`` (PASS when empty)."""
    worst = Status.PASS
    for s in statuses:
        s = Status.parse(s)
        if s.rank > worst.rank:
            worst = s
    return worst
