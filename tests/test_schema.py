"""Tests for plugin option schemas."""

from __future__ import annotations

import pytest

from healthmon.core.schema import Schema
from healthmon.errors import ConfigurationError


class TestSchema:
    def test_defaults_filled(self) -> None:
        schema = Schema({"status": {"type": str, "default": "PASS"}, "times": {"type": int, "default": 1}})
        assert schema.apply({}) == {"status": "PASS", "times": 1}

    def test_coercion(self) -> None:
        schema = Schema({"times": {"type": int, "default": 1}, "verbose": {"type": bool, "default": False}})
        options = schema.apply({"times": "3", "verbose": "yes"})
        assert options["times"] == 3
        assert options["verbose"] is True

    def test_string_type_names(self) -> None:
        schema = Schema({"limit": {"type": "number", "default": 1.5}})
        assert schema.apply({"limit": "2.5"}) == {"limit": 2.5}

    def test_required_missing(self) -> None:
        schema = Schema({"path": {"type": str, "required": True}})
        with pytest.raises(ConfigurationError, match="path"):
            schema.apply({})

    def test_optional_without_default_is_none(self) -> None:
        schema = Schema({"keyword": {"type": str}})
        assert schema.apply({}) == {"keyword": None}

    def test_enum(self) -> None:
        schema = Schema({"mode": {"type": str, "default": "a", "enum": ["a", "b"]}})
        assert schema.apply({"mode": "b"})["mode"] == "b"
        with pytest.raises(ConfigurationError):
            schema.apply({"mode": "c"})

    def test_min_max(self) -> None:
        schema = Schema({"times": {"type": int, "default": 1, "min": 1, "max": 5}})
        with pytest.raises(ConfigurationError):
            schema.apply({"times": 0})
        with pytest.raises(ConfigurationError):
            schema.apply({"times": 6})

    def test_percent_range(self) -> None:
        schema = Schema({"warn": {"type": "percent", "default": 20}})
        assert schema.apply({"warn": "55.5"})["warn"] == 55.5
        with pytest.raises(ConfigurationError):
            schema.apply({"warn": 120})

    def test_list_from_csv(self) -> None:
        schema = Schema({"ports": {"type": list, "default": []}})
        assert schema.apply({"ports": "80, 443,,8080"})["ports"] == ["80", "443", "8080"]
        assert schema.apply({"ports": [22]})["ports"] == [22]

    def test_unknown_options_pass_through(self) -> None:
        schema = Schema({"a": {"type": int, "default": 1}})
        assert schema.apply({"id": "custom", "extra": True}) == {"a": 1, "id": "custom", "extra": True}

    def test_shorthand_type(self) -> None:
        schema = Schema({"name": str})
        assert schema.apply({"name": "x"}) == {"name": "x"}

    def test_unknown_schema_key(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown schema keys"):
            Schema({"a": {"type": int, "defualt": 1}})

    def test_unsupported_type(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported type"):
            Schema({"a": {"type": "widget"}})

    def test_describe(self) -> None:
        schema = Schema({"path": {"type": str, "required": True, "help": "Mount"}})
        assert schema.describe() == [{
            "name": "path", "type": "str", "default": None,
            "required": True, "enum": None, "help": "Mount",
        }]
