"""Canonical response and metric models.

Modules may return loosely shaped output (a ``"WARN: message"`` string, a
record, or a list of records); ``normalize`` turns all of them into
validated ``Response`` objects or rejects them with ResponseFormatError.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..errors import ConfigurationError, ResponseFormatError
from .formatting import format_by_unit
from .status import Status
from .thresholds import parse_expression, status_of

_STRING_RE = re.compile(r"^(?P<status>PASS|WARN|CRIT|ERROR):\s*(?P<message>.*)$", re.DOTALL)
_ID_SPLIT_RE = re.compile(r"[./]+")


# ── Models ───────────────────────────────────────────────────────────────────


class Metric(BaseModel):
    """A single numeric observation attached to a Response."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True,
    )

    id: str
    response_id: str = ""
    type: Literal["numeric"] = "numeric"
    unit: Literal["number", "bytes", "timeMs", "percentage"] = "number"
    value: float
    value_max: float | None = None
    warn_value: str | None = None
    crit_value: str | None = None
    description: str | None = None

    @field_validator("warn_value", "crit_value")
    @classmethod
    def _check_expression(cls, v: str | None) -> str | None:
        if v:
            try:
                parse_expression(v)
            except ConfigurationError as e:
                raise ValueError(e.message) from None
        return v

    @model_validator(mode="after")
    def _check_percent_has_max(self) -> Metric:
        for expr in (self.warn_value, self.crit_value):
            if expr and parse_expression(expr).percent and self.value_max is None:
                raise ValueError(f"Percentage threshold {expr!r} requires valueMax")
        return self

    # -- Decorations (derived, never accepted as input) ---------------------

    @property
    def id_path(self) -> list[str]:
        return _ID_SPLIT_RE.split(self.id)

    @property
    def status(self) -> Status:
        return status_of(self)

    @property
    def value_formatted(self) -> str:
        return format_by_unit(self.value, self.unit)

    @property
    def value_max_formatted(self) -> str | None:
        if self.value_max is None:
            return None
        return format_by_unit(self.value_max, self.unit)

    def decorate(self) -> dict[str, Any]:
        """Serialise with the derived fields added (camelCase keys)."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        data.update(
            idPath=self.id_path,
            status=self.status.value,
            valueFormatted=self.value_formatted,
        )
        if self.value_max is not None:
            data["valueMaxFormatted"] = self.value_max_formatted
        return data


class Response(BaseModel):
    """Result of one module execution (or one finding of a multi-finding module)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: Status
    message: str = ""
    tags: dict[str, str] | None = None
    metrics: list[Metric] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> Status:
        if not isinstance(v, (str, Status)):
            raise ValueError(f"Status must be a string, got {type(v).__name__}")
        return Status.parse(v)

    @field_validator("message", mode="before")
    @classmethod
    def _default_message(cls, v: Any) -> Any:
        return "" if v is None else v

    def to_dict(self, decorate: bool = True) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_none=True, exclude={"metrics"})
        data["metrics"] = [
            m.decorate() if decorate else m.model_dump(by_alias=True, exclude_none=True)
            for m in self.metrics
        ]
        return data


def error_response(response_id: str, error: BaseException) -> Response:
    """Synthetic ERROR response standing in for a module that failed."""
    return Response(
        id=response_id,
        status=Status.ERROR,
        message=str(error) or type(error).__name__,
    )


# ── Normalisation ────────────────────────────────────────────────────────────


def normalize(raw: Any, response_id: str) -> Response | list[Response]:
    """Convert a module's raw ``run()`` output into Response(s)."""
    if isinstance(raw, (list, tuple)):
        return _normalize_many(raw, response_id)
    return _normalize_one(raw, response_id)


def _normalize_many(items: list[Any] | tuple[Any, ...], response_id: str) -> list[Response]:
    if not items:
        raise ResponseFormatError(
            f"Received an empty response list for {response_id!r}",
            context={"response_id": response_id},
        )

    responses: list[Response] = []
    for offset, item in enumerate(items):
        if isinstance(item, (list, tuple)):
            raise ResponseFormatError(
                f"Nested response lists are not supported ({response_id!r} item {offset})",
                context={"response_id": response_id},
            )
        if isinstance(item, Response):
            responses.append(item)
            continue

        sub_id = item.get("id") if isinstance(item, Mapping) else None
        if sub_id not in (None, ""):
            child_id = _prefixed(response_id, str(sub_id))
        else:
            child_id = f"{response_id}#{offset + 1}"
        responses.append(_normalize_one(item, child_id))

    ids = [r.id for r in responses]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ResponseFormatError(
            f"Module {response_id!r} returned several responses with the same id: "
            + ", ".join(duplicates),
            context={"response_id": response_id, "duplicates": duplicates},
        )
    return responses


def _normalize_one(raw: Any, response_id: str) -> Response:
    if isinstance(raw, Response):
        return raw
    if raw is None or raw == "" or raw == {}:
        raise ResponseFormatError(
            f"Received no response for {response_id!r}",
            context={"response_id": response_id},
        )

    if isinstance(raw, str):
        match = _STRING_RE.match(raw.strip())
        if not match:
            raise ResponseFormatError(
                f"Unprocessable string response for {response_id!r}: {raw[:80]!r}",
                context={"response_id": response_id},
            )
        return Response(id=response_id, status=match["status"], message=match["message"])

    if not isinstance(raw, Mapping):
        raise ResponseFormatError(
            f"Unknown response type {type(raw).__name__} for {response_id!r}",
            context={"response_id": response_id},
        )
    if not raw.get("status"):
        raise ResponseFormatError(
            f"Response for {response_id!r} does not contain a status field",
            context={"response_id": response_id},
        )

    data = {k: v for k, v in raw.items() if k not in ("metric", "metrics")}
    data["id"] = response_id
    data["metrics"] = [
        _normalize_metric(m, response_id, offset)
        for offset, m in enumerate(_raw_metrics(raw))
    ]
    metric_ids = [m.id for m in data["metrics"]]
    duplicates = sorted({i for i in metric_ids if metric_ids.count(i) > 1})
    if duplicates:
        raise ResponseFormatError(
            f"Response {response_id!r} contains several metrics with the same id: "
            + ", ".join(duplicates),
            context={"response_id": response_id, "duplicates": duplicates},
        )
    try:
        return Response.model_validate(data)
    except ValidationError as e:
        raise ResponseFormatError(
            f"Invalid response for {response_id!r}: {_summarise(e)}",
            context={"response_id": response_id, "errors": e.errors(include_url=False)},
        ) from e


def _raw_metrics(record: Mapping[str, Any]) -> list[Any]:
    for key in ("metrics", "metric"):
        value = record.get(key)
        if value is None:
            continue
        items = list(value) if isinstance(value, (list, tuple)) else [value]
        return [m for m in items if m]
    return []


def _normalize_metric(raw: Any, response_id: str, offset: int) -> Metric:
    if isinstance(raw, Metric):
        return raw.model_copy(update={
            "id": _prefixed(response_id, raw.id),
            "response_id": response_id,
        })
    if not isinstance(raw, Mapping):
        raise ResponseFormatError(
            f"Metric {offset} of {response_id!r} is not a mapping",
            context={"response_id": response_id},
        )

    sub_id = raw.get("id")
    data = {k: v for k, v in raw.items() if k not in ("responseId", "response_id", "resId")}
    data["id"] = _prefixed(response_id, str(sub_id if sub_id not in (None, "") else offset))
    data["response_id"] = response_id
    try:
        return Metric.model_validate(data)
    except ValidationError as e:
        raise ResponseFormatError(
            f"Invalid metric {data['id']!r}: {_summarise(e)}",
            context={"response_id": response_id, "errors": e.errors(include_url=False)},
        ) from e


def _prefixed(response_id: str, sub_id: str) -> str:
    if sub_id.startswith((response_id + ".", response_id + "#")):
        return sub_id
    return f"{response_id}.{sub_id}"


def _summarise(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}"
        for err in error.errors(include_url=False)
    )
