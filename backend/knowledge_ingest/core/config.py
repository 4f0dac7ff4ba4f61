"""Application configuration handling."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "KNI_"
DEFAULT_CONFIG_PATH = Path("~/.config/knowledge-ingest/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "sources_path"): "sources_path",
    ("storage", "embedding_model"): "embedding_model",
    ("github", "token"): "github_token",
    ("github", "api_url"): "github_api_url",
    ("github", "since"): "github_since",
    ("github", "lookback_days"): "github_lookback_days",
    ("github", "max_concurrency"): "github_max_concurrency",
    ("site", "cache_ttl_seconds"): "site_cache_ttl_seconds",
    ("llm", "model"): "llm_model",
    ("llm", "api_key"): "openai_api_key",
    ("http", "timeout_seconds"): "http_timeout_seconds",
    ("load", "timeout_seconds"): "load_timeout_seconds",
    ("load", "sources"): "sources",
}

# Provider credentials are also honoured under their conventional names.
_PROVIDER_ENV_MAPPING: Mapping[str, str] = {
    "GITHUB_TOKEN": "github_token",
    "OPENAI_API_KEY": "openai_api_key",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".knowledge-ingest" / "knowledge.db")
    sources_path: Path = Path(".sources")
    sources: list[str] = Field(default_factory=list)
    embedding_model: str = "hashed-384"
    github_token: str | None = None
    github_api_url: str = "https://api.github.com"
    github_since: datetime | None = None
    github_lookback_days: int = 30
    github_max_concurrency: int = Field(default=4, ge=1)
    http_timeout_seconds: float = 30.0
    load_timeout_seconds: float | None = None
    site_cache_ttl_seconds: int | None = None
    llm_model: str = "gpt-4o-mini"
    openai_api_key: str | None = None

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", "sources_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("path settings must be a path or string")

    @field_validator("sources", mode="before")
    @classmethod
    def _split_sources(cls, value: Any) -> Any:
        # Environment variables carry the list space separated.
        if isinstance(value, str):
            return value.split()
        return value

    @field_validator("github_since")
    @classmethod
    def _aware_since(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        mapped_key = _YAML_KEY_MAP.get(next_prefix)
        if mapped_key:
            flat[mapped_key] = value
        elif isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        elif key in Settings.model_fields:
            flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with KNI_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for env_name, field_name in _PROVIDER_ENV_MAPPING.items():
        value = os.environ.get(env_name)
        if value:
            overrides[field_name] = value
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
