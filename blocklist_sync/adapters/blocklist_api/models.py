"""Pydantic models for the blocklist API, persisted sync state and sync results."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class OperationType(StrEnum):
    BLOCK = "block"
    UNBLOCK = "unblock"


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class RemoteBlockedUser(BaseModel):
    """One entry of the remote blocked-users list."""

    identity: str = Field(alias="username")
    created_at: datetime | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RemoteBlockedUserList(BaseModel):
    users: list[RemoteBlockedUser] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class BlockUserRequest(BaseModel):
    username: str


class BulkBlockRequest(BaseModel):
    usernames: list[str]


class BulkBlockItemResult(BaseModel):
    """Per-identity outcome of a bulk upload."""

    identity: str = Field(alias="username")
    success: bool
    message: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BulkBlockResult(BaseModel):
    successful: int = 0
    results: list[BulkBlockItemResult] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


class PendingOperation(BaseModel):
    """A remote mutation that has not been confirmed yet."""

    type: OperationType
    identity: str
    created_at: datetime = Field(alias="createdAt")
    retry_count: int = Field(default=0, ge=0, alias="retryCount")
    next_retry_time: datetime | None = Field(default=None, alias="nextRetryTime")
    last_error: str | None = Field(default=None, alias="lastError")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def key(self) -> tuple[str, OperationType]:
        return (self.identity, self.type)

    def is_due(self, now: datetime) -> bool:
        return self.next_retry_time is None or self.next_retry_time <= now

    def is_abandoned(self, max_retries: int) -> bool:
        return self.retry_count >= max_retries


class SyncState(BaseModel):
    """Process-wide sync bookkeeping, persisted under ``syncState``."""

    last_sync_time: datetime | None = Field(default=None, alias="lastSyncTime")
    last_sync_success: bool | None = Field(default=None, alias="lastSyncSuccess")
    last_sync_error: str | None = Field(default=None, alias="lastSyncError")
    pending_operations: list[PendingOperation] = Field(
        default_factory=list, alias="pendingOperations"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class FullSyncResult(BaseModel):
    """Outcome of a full (or initial) reconciliation pass."""

    success: bool
    reason: str | None = None
    error: str | None = None
    user_count: int = 0
    uploaded: int = 0
    downloaded: int = 0
    upload_failed: int = 0


class DrainResult(BaseModel):
    """Outcome of one pass over the pending operation queue."""

    success: bool = True
    reason: str | None = None
    attempted: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    dropped: int = 0
    skipped_not_due: int = 0
    skipped_abandoned: int = 0
    errors: list[str] = Field(default_factory=list)


class ManualSyncResult(BaseModel):
    full_sync: FullSyncResult
    drain: DrainResult

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pending_processed(self) -> int:
        return self.drain.succeeded

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pending_failed(self) -> int:
        return self.drain.rescheduled + self.drain.dropped


class MutationResult(BaseModel):
    """Outcome of an optimistic local block/unblock."""

    identity: str
    success: bool = True
    synced: bool = False
    queued: bool = False
    rolled_back: bool = False
    error: str | None = None


class ConnectionCheck(BaseModel):
    success: bool
    error: str | None = None
    is_auth_error: bool = False
    is_network_error: bool = False


class SyncStatus(BaseModel):
    """Read-only snapshot for status displays."""

    has_api_key: bool
    blocked_count: int
    state: SyncState
    abandoned: list[PendingOperation] = Field(default_factory=list)


class ClearAllResult(BaseModel):
    cleared: int = 0
    queued: int = 0
    sync: ManualSyncResult | None = None
