from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from ._validators import _parse_backoff_schedule, _parse_positive_int


class SyncConfig(BaseModel):
    """Reconciliation cadence and retry policy."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    full_sync_interval_hours: int = Field(default=24, validation_alias="SYNC_FULL_INTERVAL_HOURS")
    drain_interval_minutes: int = Field(default=30, validation_alias="SYNC_DRAIN_INTERVAL_MINUTES")
    first_run_delay_minutes: int = Field(
        default=1,
        validation_alias="SYNC_FIRST_RUN_DELAY_MINUTES",
        description="Delay before the first scheduled full sync and queue drain",
    )
    retry_backoff_seconds: tuple[int, ...] = Field(
        default=(3600, 14400, 43200),
        validation_alias="SYNC_RETRY_BACKOFF_SECONDS",
        description="Wait before each retry attempt; its length is the retry ceiling",
    )

    @field_validator("full_sync_interval_hours", mode="before")
    @classmethod
    def _validate_full_interval(cls, value: Any) -> int:
        return _parse_positive_int(
            value, default=24, name="Full sync interval (hours)", maximum=168
        )

    @field_validator("drain_interval_minutes", "first_run_delay_minutes", mode="before")
    @classmethod
    def _validate_minutes(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        return _parse_positive_int(
            value,
            default=default,
            name=info.field_name.replace("_", " ").capitalize(),
            maximum=1440,
        )

    @field_validator("retry_backoff_seconds", mode="before")
    @classmethod
    def _validate_backoff(cls, value: Any) -> tuple[int, ...]:
        return _parse_backoff_schedule(value)

    @property
    def max_retries(self) -> int:
        return len(self.retry_backoff_seconds)
