"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (LLMSTXTKIT__FETCHER__TIMEOUT_SECONDS=30)
  3. llmstxtkit.yaml        (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from llmstxtkit import __version__

_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("llmstxtkit")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_CACHE_DIR) / "cache.db")

DEFAULT_USER_AGENT = f"llmstxtkit/{__version__} (+https://github.com/llmstxtkit/llmstxtkit)"
DEFAULT_ACCEPT = "text/plain, text/markdown"


def _find_config_file() -> str | None:
    """Return the path of the first llmstxtkit.yaml found, or None."""
    candidates = [
        Path("llmstxtkit.yaml"),
        Path(platformdirs.user_config_dir("llmstxtkit")) / "llmstxtkit.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class FetcherSettings(BaseModel):
    user_agent: str = DEFAULT_USER_AGENT
    accept: str | None = None  # None → DEFAULT_ACCEPT
    timeout_seconds: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_delay_ms: int = Field(default=1000, ge=0)
    max_response_size_bytes: int = Field(default=5 * 1024 * 1024, gt=0)


class CacheSettings(BaseModel):
    backend: Literal["memory", "file", "sqlite"] = "memory"
    ttl_seconds: float = Field(default=3600.0, ge=0)
    max_entries: int = Field(default=1000, ge=1)
    stale_while_revalidate: bool = True
    directory: str = _DEFAULT_CACHE_DIR
    db_path: str = _DEFAULT_DB_PATH


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: LLMSTXTKIT__CACHE__MAX_ENTRIES=50
        env_prefix="LLMSTXTKIT__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    fetcher: FetcherSettings = FetcherSettings()
    cache: CacheSettings = CacheSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            # dotenv and file secrets intentionally excluded
        )
