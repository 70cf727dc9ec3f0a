"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from healthmon.cache import Cache
from healthmon.config import Settings
from healthmon.core.engine import Engine
from healthmon.core.plugin import Injector


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment, with a throwaway cache file."""
    return Settings(
        server_id="test-server",
        server_title="Test Server",
        cache_path=str(tmp_path / "cache.db"),
        config_file=str(tmp_path / "healthmon.yaml"),
        executor_workers=2,
    )


@pytest.fixture
def engine(settings):
    eng = Engine(settings=settings)
    yield eng
    asyncio.run(eng.shutdown())


@pytest.fixture
def cache(tmp_path):
    c = Cache(tmp_path / "plugin-cache.db")
    yield c
    c.close()


def _plugin(plugin_id: str | None = None, **functions: Any) -> SimpleNamespace:
    """Inline plugin object exposing the given capability functions."""
    if plugin_id is not None:
        functions["id"] = plugin_id
    return SimpleNamespace(**functions)


def _make_ctx(impl: Any, engine: Any = None, plugin_id: str = "test", **options: Any) -> Injector:
    """Injector with options validated through the plugin's own config() schema."""
    ctx = Injector(engine=engine, id=plugin_id, options=dict(options), state={})
    config = getattr(impl, "config", None)
    if config is not None:
        ctx.options = config(ctx).apply(options)
    return ctx


@pytest.fixture
def make_plugin():
    return _plugin


@pytest.fixture
def make_ctx():
    return _make_ctx
