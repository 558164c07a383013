"""Configuration management using pydantic-settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from NOTEGEN_* environment variables or .env."""

    # Generation
    request_timeout_seconds: float = Field(default=300.0, gt=0)
    thinking_idle_threshold_seconds: float = Field(default=0.5, ge=0)
    max_consecutive_parse_failures: int = Field(default=3, ge=0)

    # Storage
    keys_config_path: Path = Path("config/keys_config.yaml")
    custom_providers_path: Path = Path("config/custom_providers.yaml")

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_interactions: bool = False

    model_config = SettingsConfigDict(
        env_prefix="NOTEGEN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value):
        if value in (None, ""):
            return "INFO"
        return str(value).strip().upper()


# Global settings instance
settings = Settings()
