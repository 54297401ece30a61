"""Configuration management for Heat Planner."""

from heat_planner.config.schema import AppConfig
from heat_planner.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
