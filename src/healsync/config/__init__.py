"""Configuration module for HealSync."""

from healsync.config.base import Settings
from healsync.config.loader import get_settings

__all__ = ["Settings", "get_settings"]
