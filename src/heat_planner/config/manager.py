"""Configuration loading: shipped defaults overlaid with user overrides."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from heat_planner.config.schema import AppConfig

logger = logging.getLogger(__name__)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested dicts merge key by key."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def read_yaml(path: Path) -> dict[str, Any]:
    """Mapping stored in ``path``; empty when missing or not a mapping."""
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


class ConfigManager:
    """Shipped defaults overlaid with the user's ``config.yaml``."""

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")

    def load(self) -> AppConfig:
        overrides = read_yaml(self._user_path)
        config = AppConfig.model_validate(deep_merge(read_yaml(self._defaults_path), overrides))
        logger.info(
            "Configuration loaded from %s (%d override sections from %s)",
            self._defaults_path, len(overrides), self._user_path,
        )
        return config

