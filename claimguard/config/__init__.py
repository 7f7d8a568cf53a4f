"""Configuration package."""

from .settings import ALL_SOURCES, Settings, get_settings, resolve_path  # noqa: F401

__all__ = ["ALL_SOURCES", "Settings", "get_settings", "resolve_path"]
