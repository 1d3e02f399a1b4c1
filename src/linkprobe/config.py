"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (LINKPROBE__CACHE__BACKEND=memory)
  2. linkprobe.yaml         (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults.
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

from linkprobe.classifier import DEFAULT_CONTENT_TYPES, DEFAULT_MAX_CONTENT_BYTES

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("linkprobe")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "validations.db")


def _find_config_file() -> str | None:
    """Return the path of the first linkprobe.yaml found, or None."""
    candidates = [
        Path("linkprobe.yaml"),
        Path(platformdirs.user_config_dir("linkprobe")) / "linkprobe.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    transport: Literal["stdio", "http"] = "stdio"
    host: str = "0.0.0.0"
    port: int = 8080
    auth_enabled: bool = False
    auth_key: str = ""


class CacheSettings(BaseModel):
    backend: Literal["memory", "sqlite"] = "sqlite"
    # In-process entries go stale quickly; durable rows are kept for days.
    ttl_minutes: int = Field(default=60, ge=1)
    result_expiration_days: int = Field(default=7, ge=1)
    db_path: str = _DEFAULT_DB_PATH
    project_id: str = "default"
    sweep_interval_hours: int = Field(default=6, ge=1)


class ValidationSettings(BaseModel):
    user_agent: str = "linkprobe-validator/1.0"
    max_batch_size: int = Field(default=100, ge=1)
    max_concurrent_requests: int = Field(default=10, ge=1)
    max_content_bytes: int = Field(default=DEFAULT_MAX_CONTENT_BYTES, ge=0)
    content_types: list[str] = Field(default_factory=lambda: sorted(DEFAULT_CONTENT_TYPES))


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: LINKPROBE__SERVER__PORT=9090
        env_prefix="LINKPROBE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    cache: CacheSettings = CacheSettings()
    validation: ValidationSettings = ValidationSettings()
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
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
