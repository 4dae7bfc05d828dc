"""Filter and client configuration models."""

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

Pattern = str | re.Pattern[str]


def _compile_patterns(value: Any) -> Any:
    """Turn `{regex: "..."}` entries into compiled patterns, keep plain strings."""
    if not isinstance(value, list):
        return value
    patterns: list[Any] = []
    for item in value:
        if isinstance(item, dict) and "regex" in item:
            patterns.append(re.compile(item["regex"]))
        else:
            patterns.append(item)
    return patterns


class FilterOptions(BaseModel):
    """Inbound filter options. Unset fields are None so partials can be merged."""

    allow_urls: list[Pattern] | None = Field(default=None, description="Origin URLs to keep")
    deny_urls: list[Pattern] | None = Field(default=None, description="Origin URLs to drop")
    ignore_errors: list[Pattern] | None = Field(default=None, description="Messages to drop")
    ignore_internal: bool | None = Field(default=None, description="Drop internal errors")

    @field_validator("allow_urls", "deny_urls", "ignore_errors", mode="before")
    @classmethod
    def _patterns(cls, value: Any) -> Any:
        return _compile_patterns(value)


class ClientOptions(FilterOptions):
    """Options the client and its integrations read."""

    ingest_url: str = ""
    ingest_secret: str = ""
    environment: str | None = None
    release: str | None = None
    attach_stacktrace: bool = False
    default_integrations: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> "ClientOptions":
        """Compose client options from settings and the optional filters YAML file."""
        file_options = FilterOptions()
        path = settings.filters_config_path
        if path is not None:
            try:
                file_options = load_filters_config(path)
                logger.info(f"Loaded filter options from {path}")
            except FileNotFoundError:
                logger.warning(f"Filters config not found: {path}, using settings only")

        def _join(key: str) -> list[Any] | None:
            combined = list(getattr(settings, key) or []) + list(getattr(file_options, key) or [])
            return combined or None

        return cls(
            ingest_url=settings.ingest_url,
            ingest_secret=settings.ingest_secret,
            environment=settings.environment or None,
            release=settings.release or None,
            attach_stacktrace=settings.attach_stacktrace,
            allow_urls=_join("allow_urls"),
            deny_urls=_join("deny_urls"),
            ignore_errors=_join("ignore_errors"),
            ignore_internal=(
                settings.ignore_internal
                if settings.ignore_internal is not None
                else file_options.ignore_internal
            ),
        )


def load_filters_config(config_path: str | Path) -> FilterOptions:
    """Load filter options from a YAML file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Filters config not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return FilterOptions.model_validate(data)
