"""Configuration settings for the FlowDrain financial core."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables or a local .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hosted backend (PostgREST-style REST API)
    api_url: str = Field(
        default="http://localhost:54321", validation_alias="FLOWDRAIN_API_URL"
    )
    api_key: SecretStr = Field(..., validation_alias="FLOWDRAIN_API_KEY")
    access_token: SecretStr | None = Field(
        default=None, validation_alias="FLOWDRAIN_ACCESS_TOKEN"
    )
    timeout: float = Field(default=30.0, validation_alias="FLOWDRAIN_TIMEOUT")
    max_retries: int = Field(default=3, validation_alias="FLOWDRAIN_MAX_RETRIES")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
