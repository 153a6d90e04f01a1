"""Base configuration settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values are read from the environment (prefix ``HEALSYNC_``) and an
    optional ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="HEALSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "HealSync"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"

    # Audit trail identity of the serving application
    audit_source_site: str = "HealSync"
    audit_observer_display: str = "HealSync Server"
    audit_auth_observer_display: str = "HealSync Auth Service"
    audit_application_display: str = "HealSync Web Application"
    audit_application_alt_id: str = "healsync-web"

    # Audit queries
    audit_query_default_limit: int = Field(default=50, ge=1)
    audit_display_limit: int = Field(default=50, ge=1)

    # Migration
    migration_batch_size: int = Field(
        default=500, description="Documents per storage batch commit"
    )
    migration_max_retries: int = Field(default=2, ge=0)
    migration_retry_delay: float = Field(default=0.5, ge=0)

    # Export
    export_indent: int = 2

    @field_validator("migration_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        """Keep batches within the storage layer's write limit."""
        if not 1 <= v <= 500:
            raise ValueError("migration_batch_size must be between 1 and 500")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only console and json renderers are supported."""
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v
