from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ._validators import _parse_bounded_int, _parse_timeout

DEFAULT_PREFIX = "blocklist"


class RedisConfig(BaseModel):
    """Location of the synchronized key-value store.

    Every process pointing at the same database and prefix shares one blocked
    list, one API key and one pending-operation queue.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    required: bool = Field(
        default=False,
        validation_alias="REDIS_REQUIRED",
        description="Refuse to start on a process-local store when Redis is unreachable",
    )
    url: str | None = Field(default=None, validation_alias="REDIS_URL")
    host: str = Field(default="127.0.0.1", validation_alias="REDIS_HOST")
    port: int = Field(default=6379, validation_alias="REDIS_PORT")
    db: int = Field(default=0, validation_alias="REDIS_DB")
    password: str | None = Field(default=None, validation_alias="REDIS_PASSWORD")
    prefix: str = Field(default=DEFAULT_PREFIX, validation_alias="REDIS_PREFIX")
    socket_timeout: float = Field(default=5.0, validation_alias="REDIS_SOCKET_TIMEOUT")

    @field_validator("url", "password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str | None) -> str | None:
        if value and not value.startswith(("redis://", "rediss://", "unix://")):
            msg = "Redis URL must use the redis://, rediss:// or unix:// scheme"
            raise ValueError(msg)
        return value

    @field_validator("host", mode="before")
    @classmethod
    def _validate_host(cls, value: Any) -> str:
        host = str(value or "").strip()
        if not host or len(host) > 200:
            msg = "Redis host must be a non-empty name of at most 200 characters"
            raise ValueError(msg)
        return host

    @field_validator("port", mode="before")
    @classmethod
    def _validate_port(cls, value: Any) -> int:
        return _parse_bounded_int(value, default=6379, name="Redis port", minimum=1, maximum=65535)

    @field_validator("db", mode="before")
    @classmethod
    def _validate_db(cls, value: Any) -> int:
        return _parse_bounded_int(value, default=0, name="Redis db", minimum=0, maximum=65535)

    @field_validator("prefix", mode="before")
    @classmethod
    def _validate_prefix(cls, value: Any) -> str:
        prefix = str(value or DEFAULT_PREFIX).strip()
        if ":" in prefix or len(prefix) > 50:
            msg = "Redis prefix must be at most 50 characters and contain no ':'"
            raise ValueError(msg)
        return prefix

    @field_validator("socket_timeout", mode="before")
    @classmethod
    def _validate_socket_timeout(cls, value: Any) -> float:
        return _parse_timeout(value, default=5.0, name="Redis socket timeout", maximum=60)

    @property
    def connection_url(self) -> str:
        return self.url or f"redis://{self.host}:{self.port}/{self.db}"
