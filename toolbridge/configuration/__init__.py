"""Configuration package."""

from toolbridge.configuration.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
