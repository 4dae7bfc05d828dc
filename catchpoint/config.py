"""Configuration management for Catchpoint."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5033)
    log_level: str = Field(default="INFO")

    # Delivery
    ingest_url: str = Field(default="")
    ingest_secret: str = Field(default="")
    environment: str = Field(default="")
    release: str = Field(default="")

    # Capture
    attach_stacktrace: bool = Field(default=False)

    # Inbound filters
    allow_urls: list[str] = Field(default_factory=list)
    deny_urls: list[str] = Field(default_factory=list)
    ignore_errors: list[str] = Field(default_factory=list)
    ignore_internal: bool | None = Field(default=None)
    filters_config: str = Field(default="")

    @property
    def filters_config_path(self) -> Path | None:
        return Path(self.filters_config) if self.filters_config else None


@lru_cache
def get_settings() -> Settings:
    return Settings()
