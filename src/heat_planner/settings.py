"""Application settings loader.

Config file locations default to the working directory and can be moved
with ``HEAT_PLANNER_DEFAULTS`` and ``HEAT_PLANNER_CONFIG``.
"""

from __future__ import annotations

import os
from pathlib import Path

from heat_planner.config.manager import ConfigManager
from heat_planner.config.schema import AppConfig

DEFAULTS_ENV = "HEAT_PLANNER_DEFAULTS"
USER_CONFIG_ENV = "HEAT_PLANNER_CONFIG"


def config_paths() -> tuple[Path, Path]:
    """(defaults, user) config paths after environment overrides."""
    return (
        Path(os.environ.get(DEFAULTS_ENV, "config.defaults.yaml")),
        Path(os.environ.get(USER_CONFIG_ENV, "config.yaml")),
    )


def load_settings(
    defaults_path: Path | None = None,
    user_path: Path | None = None,
) -> AppConfig:
    """Load the configuration, falling back to the environment paths."""
    env_defaults, env_user = config_paths()
    manager = ConfigManager(
        defaults_path=defaults_path or env_defaults,
        user_path=user_path or env_user,
    )
    return manager.load()
