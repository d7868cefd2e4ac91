"""Retry pass over the pending operation queue.

Unlike HTTP-level retries this works across process restarts: the attempt
count and next due time live in the persisted sync state, and the wait
between attempts follows a fixed escalating schedule.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blocklist_sync.adapters.blocklist_api.errors import is_retryable_error
from blocklist_sync.adapters.blocklist_api.models import (
    DrainResult,
    OperationType,
    PendingOperation,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime, timedelta

    from blocklist_sync.adapters.blocklist_api.sync.protocols import BlocklistApiClientProtocol
    from blocklist_sync.adapters.blocklist_api.sync.queue import PendingOperationQueue
    from blocklist_sync.adapters.blocklist_api.sync.state import SyncStateStore

logger = logging.getLogger(__name__)


def next_retry_delay(schedule: Sequence[timedelta], retry_count: int) -> timedelta:
    """Wait before attempt ``retry_count + 1``; past the end, the last step repeats."""
    index = min(max(retry_count, 1), len(schedule)) - 1
    return schedule[index]


class QueueDrainer:
    def __init__(
        self,
        *,
        queue: PendingOperationQueue,
        state: SyncStateStore,
        backoff_schedule: Sequence[timedelta],
        clock: Callable[[], datetime],
    ) -> None:
        if not backoff_schedule:
            msg = "Backoff schedule must contain at least one step"
            raise ValueError(msg)
        self._queue = queue
        self._state = state
        self._schedule = tuple(backoff_schedule)
        self._clock = clock

    @property
    def max_retries(self) -> int:
        return len(self._schedule)

    async def drain(
        self,
        client: BlocklistApiClientProtocol,
        *,
        force: bool = False,
        correlation_id: str,
    ) -> DrainResult:
        """Attempt every due operation; ``force`` also attempts not-yet-due and abandoned ones."""
        result = DrainResult()
        now = self._clock()

        for queued in await self._queue.list():
            # Earlier attempts await the remote; a local mutation may have
            # cancelled or rescheduled this entry since the snapshot was taken.
            operation = await self._queue.get(queued.identity, queued.type)
            if operation is None:
                logger.debug(
                    "pending_operation_cancelled",
                    extra={
                        "correlation_id": correlation_id,
                        "identity": queued.identity,
                        "operation_type": queued.type.value,
                    },
                )
                continue
            if not force and not operation.is_due(now):
                result.skipped_not_due += 1
                continue
            if not force and operation.is_abandoned(self.max_retries):
                result.skipped_abandoned += 1
                logger.debug(
                    "pending_operation_abandoned",
                    extra={
                        "correlation_id": correlation_id,
                        "identity": operation.identity,
                        "operation_type": operation.type.value,
                        "retry_count": operation.retry_count,
                    },
                )
                continue
            await self.attempt(client, operation, result=result, correlation_id=correlation_id)

        result.success = result.rescheduled == 0 and result.dropped == 0
        logger.info(
            "queue_drain_complete",
            extra={
                "correlation_id": correlation_id,
                "force": force,
                **result.model_dump(exclude={"errors", "success", "reason"}),
            },
        )
        return result

    async def attempt(
        self,
        client: BlocklistApiClientProtocol,
        operation: PendingOperation,
        *,
        result: DrainResult,
        correlation_id: str,
    ) -> None:
        result.attempted += 1
        log_extra = {
            "correlation_id": correlation_id,
            "identity": operation.identity,
            "operation_type": operation.type.value,
            "retry_count": operation.retry_count,
        }

        try:
            if operation.type is OperationType.BLOCK:
                await client.add(operation.identity)
            else:
                await client.remove(operation.identity)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            result.errors.append(f"{operation.type.value} {operation.identity}: {error}")
            if is_retryable_error(exc):
                await self._reschedule(operation, error)
                result.rescheduled += 1
                logger.warning(
                    "pending_operation_retry_scheduled",
                    extra={**log_extra, "error": error},
                )
            else:
                await self._queue.remove(operation.identity, operation.type)
                await self._state.update(last_sync_error=error)
                result.dropped += 1
                logger.warning(
                    "pending_operation_dropped_non_retryable",
                    extra={**log_extra, "error": error},
                )
            return

        await self._queue.remove(operation.identity, operation.type)
        await self._state.update(
            last_sync_time=self._clock(), last_sync_success=True, last_sync_error=None
        )
        result.succeeded += 1
        logger.info("pending_operation_succeeded", extra=log_extra)

    async def _reschedule(self, operation: PendingOperation, error: str) -> None:
        retry_count = operation.retry_count + 1
        next_retry_time = self._clock() + next_retry_delay(self._schedule, retry_count)
        await self._queue.update(
            operation.identity,
            operation.type,
            retry_count=retry_count,
            next_retry_time=next_retry_time,
            last_error=error,
        )
