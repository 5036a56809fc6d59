"""Configuration settings for the practice automation engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables (and an optional .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Entity service
    entity_api_url: str = Field(
        default="http://localhost:8000", validation_alias="ENTITY_API_URL"
    )
    entity_api_key: SecretStr | None = Field(default=None, validation_alias="ENTITY_API_KEY")
    entity_timeout: float = Field(default=30.0, validation_alias="ENTITY_TIMEOUT")
    entity_max_retries: int = Field(default=3, validation_alias="ENTITY_MAX_RETRIES")
    entity_list_limit: int = Field(default=5000, validation_alias="ENTITY_LIST_LIMIT")

    # Engine behavior
    automation_max_concurrency: int = Field(
        default=1, ge=1, validation_alias="AUTOMATION_MAX_CONCURRENCY"
    )
    automation_yield_every: int = Field(
        default=50, ge=1, validation_alias="AUTOMATION_YIELD_EVERY"
    )
    periodic_report_dedup_policy: Literal[
        "any_exists_suppresses_all", "per_combination_dedup"
    ] = Field(
        default="any_exists_suppresses_all", validation_alias="PERIODIC_REPORT_DEDUP_POLICY"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
