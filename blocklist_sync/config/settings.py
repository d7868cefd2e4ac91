from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

from .integrations import BlocklistApiConfig
from .redis import RedisConfig
from .sync import SyncConfig

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    use_loguru: bool = Field(default=True, validation_alias="LOG_USE_LOGURU")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in _LOG_LEVELS:
            msg = f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {value!r}"
            raise ValueError(msg)
        return level

    @field_validator("log_file", mode="before")
    @classmethod
    def _normalize_log_file(cls, value: Any) -> str | None:
        path = str(value).strip() if value is not None else ""
        if "\x00" in path:
            msg = "LOG_FILE contains a NUL byte"
            raise ValueError(msg)
        return path or None


@dataclass(frozen=True)
class AppConfig:
    api: BlocklistApiConfig
    sync: SyncConfig
    redis: RedisConfig
    runtime: RuntimeConfig


def _env_names(field: FieldInfo) -> Iterator[str]:
    alias = field.validation_alias
    if isinstance(alias, str):
        yield alias
    elif isinstance(alias, AliasChoices):
        yield from (choice for choice in alias.choices if isinstance(choice, str))
    if field.alias:
        yield field.alias


class Settings(BaseSettings):
    """Settings read from the process environment and an optional ``.env`` file.

    Every section field declares its flat variable name (``REDIS_PREFIX``,
    ``SYNC_DRAIN_INTERVAL_MINUTES``...) as a ``validation_alias``; the
    ``_sections_from_env`` hook routes those variables into their section.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    api: BlocklistApiConfig = Field(default_factory=BlocklistApiConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="before")
    @classmethod
    def _sections_from_env(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        # Keyword overrides shadow the environment, key by key.
        source = {**os.environ, **data}
        payload = dict(data)
        for section, info in cls.model_fields.items():
            model = info.annotation
            if not (isinstance(model, type) and issubclass(model, BaseModel)):
                continue
            from_env = {
                name: source[env]
                for name, field in model.model_fields.items()
                for env in _env_names(field)
                if env in source
            }
            explicit = payload.get(section)
            if explicit is None:
                if from_env:
                    payload[section] = from_env
            elif isinstance(explicit, dict):
                payload[section] = {**from_env, **explicit}
        return payload

    def as_app_config(self) -> AppConfig:
        return AppConfig(api=self.api, sync=self.sync, redis=self.redis, runtime=self.runtime)


def load_config(**overrides: Any) -> AppConfig:
    """Load configuration from the environment (and ``.env`` when present).

    ``overrides`` map section names to partial dicts, e.g.
    ``load_config(sync={"retry_backoff_seconds": "10,20"})``.

    Raises:
        RuntimeError: If any configuration value fails validation.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc
    return settings.as_app_config()
