"""Configuration module."""

from .settings import ReporterSettings, clear_settings_cache, get_settings

__all__ = ["ReporterSettings", "get_settings", "clear_settings_cache"]
