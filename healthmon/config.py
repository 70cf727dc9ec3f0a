"""Process settings (environment / .env) and the plugin config file."""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "HEALTHMON_",
        "extra": "ignore",
    }

    # Identity reported by reporters (prometheus labels, webhook text, sqlite rows)
    server_id: str = socket.gethostname()
    server_title: str = ""

    # Plugin registration file, used when no -m / -r flags are given
    config_file: str = "healthmon.yaml"

    # Plugin cache (throttles, snapshot deltas)
    cache_path: str = "data/cache.db"

    # Thread pool for plain (non-async) plugin functions
    executor_workers: int = 4

    # Default pause between looped cycles, parsed by scheduler.parse_duration
    loop_pause: str = "10s"

    # Logging
    log_level: str = "INFO"


settings = Settings()


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML plugin config into ``{"modules": {...}, "reporters": {...}}``."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", context={"config_path": str(path)})

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse {path}: {e}", context={"config_path": str(path)},
        ) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Expected a mapping at the top of {path}", context={"config_path": str(path)},
        )

    config = {
        "modules": raw.get("modules") or {},
        "reporters": raw.get("reporters") or {},
    }
    for section, entries in config.items():
        if not isinstance(entries, dict):
            raise ConfigurationError(
                f"`{section}` in {path} must be a mapping of id -> options",
                context={"config_path": str(path)},
            )
    logger.info(
        "Loaded %d modules and %d reporters from %s",
        len(config["modules"]), len(config["reporters"]), path,
    )
    return config
