"""Declarative option schemas for plugins.

A plugin's ``config()`` returns a ``Schema`` describing its options::

    def config(ctx):
        return ctx.Schema({
            "path": {"type": str, "required": True},
            "warn_percent": {"type": "percent", "default": 20},
        })

The engine applies it to the raw registration options. Validation is
delegated to a pydantic model generated from the field map, so the usual
lax coercions apply ("3" -> 3, "yes" -> True). Keys not named in the schema
pass through untouched.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, create_model

from ..errors import ConfigurationError

_MISSING = object()

_TYPE_NAMES: dict[Any, Any] = {
    "str": str, "string": str,
    "int": int, "integer": int,
    "float": float, "number": float,
    "bool": bool, "boolean": bool,
    "list": list, "array": list,
    "dict": dict, "object": dict,
    "percent": float,
}


def _split_csv(v: Any) -> Any:
    if isinstance(v, str):
        return [part.strip() for part in v.split(",") if part.strip()]
    return v


@dataclass
class FieldSpec:
    name: str
    type: Any = str
    default: Any = _MISSING
    required: bool = False
    enum: tuple[Any, ...] | None = None
    help: str = ""
    min: float | None = None
    max: float | None = None

    @classmethod
    def from_raw(cls, name: str, raw: Any) -> FieldSpec:
        if not isinstance(raw, Mapping):
            # Shorthand: {"path": str}
            return cls(name=name, type=raw)
        unknown = set(raw) - {"type", "default", "required", "enum", "help", "min", "max"}
        if unknown:
            raise ConfigurationError(
                f"Unknown schema keys for option {name!r}: {', '.join(sorted(unknown))}",
                context={"option": name},
            )
        spec = cls(name=name, **{k: v for k, v in raw.items() if k != "enum"})
        if raw.get("enum") is not None:
            spec.enum = tuple(raw["enum"])
        if spec.type == "percent":
            spec.min = 0 if spec.min is None else spec.min
            spec.max = 100 if spec.max is None else spec.max
        return spec

    @property
    def type_name(self) -> str:
        if isinstance(self.type, str):
            return self.type
        return getattr(self.type, "__name__", str(self.type))

    def annotation(self) -> Any:
        if self.enum:
            annotation: Any = Literal[self.enum]
        else:
            annotation = _TYPE_NAMES.get(self.type, self.type)
            if not isinstance(annotation, type):
                raise ConfigurationError(
                    f"Unsupported type {self.type!r} for option {self.name!r}",
                    context={"option": self.name},
                )
            if annotation is list:
                annotation = Annotated[list, BeforeValidator(_split_csv)]
        if self.default is _MISSING and not self.required:
            annotation = Optional[annotation]
        return annotation

    def field(self) -> Any:
        if self.default is not _MISSING:
            default = self.default
        elif self.required:
            default = ...
        else:
            default = None
        return Field(default, alias=self.name, description=self.help or None, ge=self.min, le=self.max)


class Schema:
    """A field map that validates and defaults raw plugin options."""

    def __init__(self, fields: Mapping[str, Any]) -> None:
        self.fields = {name: FieldSpec.from_raw(name, spec) for name, spec in fields.items()}
        # Internal field names avoid clashes with BaseModel attributes; aliases carry the real keys
        self._model: type[BaseModel] = create_model(
            "PluginOptions",
            __config__=ConfigDict(extra="allow"),
            **{
                f"field_{i}": (spec.annotation(), spec.field())
                for i, spec in enumerate(self.fields.values())
            },
        )

    def apply(self, raw: Mapping[str, Any] | None) -> dict[str, Any]:
        """Return validated options with defaults filled in."""
        try:
            model = self._model.model_validate(dict(raw or {}))
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors(include_url=False)
            ]
            raise ConfigurationError(
                "Invalid options - " + "; ".join(problems),
                context={"validation_errors": problems},
            ) from e
        return model.model_dump(by_alias=True)

    def describe(self) -> list[dict[str, Any]]:
        return [
            {
                "name": spec.name,
                "type": spec.type_name,
                "default": None if spec.default is _MISSING else spec.default,
                "required": spec.required,
                "enum": list(spec.enum) if spec.enum else None,
                "help": spec.help,
            }
            for spec in self.fields.values()
        ]

    def __repr__(self) -> str:
        return f"Schema({', '.join(self.fields)})"
