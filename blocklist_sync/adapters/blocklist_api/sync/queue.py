"""Durable queue of remote mutations awaiting confirmation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from blocklist_sync.adapters.blocklist_api.models import (
    OperationType,
    PendingOperation,
    SyncState,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from blocklist_sync.adapters.blocklist_api.sync.state import SyncStateStore

logger = logging.getLogger(__name__)


class PendingOperationQueue:
    """Add/remove/update/list over ``SyncState.pending_operations``.

    Every call is a single atomic read-modify-write of the sync state, which
    keeps the one-entry-per-(identity, type) invariant under concurrent adds.
    """

    def __init__(self, state: SyncStateStore, clock: Callable[[], datetime]) -> None:
        self._state = state
        self._clock = clock

    async def add(
        self,
        op_type: OperationType,
        identity: str,
        *,
        retry_count: int = 0,
        next_retry_time: datetime | None = None,
        last_error: str | None = None,
    ) -> bool:
        """Enqueue an operation; returns False if one with the same key exists."""
        now = self._clock()
        op_type = OperationType(op_type)

        def _add(state: SyncState) -> bool:
            if any(op.key == (identity, op_type) for op in state.pending_operations):
                return False
            state.pending_operations.append(
                PendingOperation(
                    type=op_type,
                    identity=identity,
                    created_at=now,
                    retry_count=retry_count,
                    next_retry_time=next_retry_time or now,
                    last_error=last_error,
                )
            )
            return True

        added = await self._state.mutate(_add)
        if added:
            logger.info(
                "pending_operation_added",
                extra={"identity": identity, "operation_type": op_type.value},
            )
        return added

    async def add_many(self, op_type: OperationType, identities: Iterable[str]) -> int:
        """Enqueue one operation per identity in a single write; returns how many were new."""
        now = self._clock()
        op_type = OperationType(op_type)
        wanted = list(identities)

        def _add_many(state: SyncState) -> int:
            existing = {op.key for op in state.pending_operations}
            added = 0
            for identity in wanted:
                if (identity, op_type) in existing:
                    continue
                existing.add((identity, op_type))
                state.pending_operations.append(
                    PendingOperation(
                        type=op_type, identity=identity, created_at=now, next_retry_time=now
                    )
                )
                added += 1
            return added

        return await self._state.mutate(_add_many)

    async def remove(self, identity: str, op_type: OperationType) -> bool:
        op_type = OperationType(op_type)

        def _remove(state: SyncState) -> bool:
            before = len(state.pending_operations)
            state.pending_operations = [
                op for op in state.pending_operations if op.key != (identity, op_type)
            ]
            return len(state.pending_operations) != before

        return await self._state.mutate(_remove)

    async def update(self, identity: str, op_type: OperationType, **patch: Any) -> bool:
        """Apply a partial patch to the matching entry; returns False if none matches."""
        op_type = OperationType(op_type)

        def _update(state: SyncState) -> bool:
            for index, op in enumerate(state.pending_operations):
                if op.key == (identity, op_type):
                    state.pending_operations[index] = op.model_copy(update=patch)
                    return True
            return False

        return await self._state.mutate(_update)

    async def get(self, identity: str, op_type: OperationType) -> PendingOperation | None:
        """Current entry for the key, or None once it was removed.

        Read under the state lock so it never observes a half-applied mutation.
        """
        op_type = OperationType(op_type)

        def _find(state: SyncState) -> PendingOperation | None:
            for op in state.pending_operations:
                if op.key == (identity, op_type):
                    return op
            return None

        return await self._state.mutate(_find)

    async def restore(self, operation: PendingOperation) -> bool:
        """Put a previously removed entry back unchanged, unless its key was re-queued."""

        def _restore(state: SyncState) -> bool:
            if any(op.key == operation.key for op in state.pending_operations):
                return False
            state.pending_operations.append(operation)
            return True

        return await self._state.mutate(_restore)

    async def list(self) -> list[PendingOperation]:
        state = await self._state.load()
        return state.pending_operations

    async def abandoned(self, max_retries: int) -> list[PendingOperation]:
        """Operations that exhausted the backoff schedule and are no longer retried."""
        return [op for op in await self.list() if op.is_abandoned(max_retries)]

    async def reconcile(self, confirmed_remote: Iterable[str]) -> int:
        """Drop operations the remote state already reflects; returns how many were dropped.

        A block is done once the identity is on the remote list, an unblock
        once it is absent from it.
        """
        remote = set(confirmed_remote)

        def _reconcile(state: SyncState) -> int:
            kept = [
                op
                for op in state.pending_operations
                if not (
                    (op.type is OperationType.BLOCK and op.identity in remote)
                    or (op.type is OperationType.UNBLOCK and op.identity not in remote)
                )
            ]
            dropped = len(state.pending_operations) - len(kept)
            state.pending_operations = kept
            return dropped

        dropped = await self._state.mutate(_reconcile)
        if dropped:
            logger.info("pending_operations_reconciled", extra={"dropped": dropped})
        return dropped
