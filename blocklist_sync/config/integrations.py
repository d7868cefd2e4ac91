from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ._validators import _parse_timeout

DEFAULT_API_URL = "https://hn.gordyf.com"


class BlocklistApiConfig(BaseModel):
    """Remote blocked-users API connection settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_url: str = Field(default=DEFAULT_API_URL, validation_alias="BLOCKLIST_API_URL")
    timeout_sec: float = Field(default=10.0, validation_alias="BLOCKLIST_API_TIMEOUT_SEC")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or DEFAULT_API_URL).strip()
        if not url:
            return DEFAULT_API_URL
        if not url.startswith(("http://", "https://")):
            msg = "Blocklist API URL must start with http:// or https://"
            raise ValueError(msg)
        return url.rstrip("/")

    @field_validator("timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return _parse_timeout(value, default=10.0, name="Blocklist API timeout", maximum=300)
