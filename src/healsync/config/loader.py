"""Configuration loader."""

from functools import lru_cache

from pydantic import ValidationError

from healsync.config.base import Settings
from healsync.core.exceptions import ConfigurationError


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Raises:
        ConfigurationError: If the environment holds invalid values
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid HealSync configuration: {e}") from e
