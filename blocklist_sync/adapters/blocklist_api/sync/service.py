"""Public blocklist sync service composed of small collaborators."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from blocklist_sync.adapters.blocklist_api.client import DEFAULT_TIMEOUT, BlocklistApiClient
from blocklist_sync.adapters.blocklist_api.errors import NoCredentialError, is_retryable_error
from blocklist_sync.adapters.blocklist_api.models import (
    ClearAllResult,
    ConnectionCheck,
    DrainResult,
    FullSyncResult,
    ManualSyncResult,
    MutationResult,
    OperationType,
    SyncStatus,
)
from blocklist_sync.adapters.blocklist_api.sync.constants import DEFAULT_BACKOFF_SCHEDULE
from blocklist_sync.adapters.blocklist_api.sync.drain import QueueDrainer
from blocklist_sync.adapters.blocklist_api.sync.merge import plan_merge
from blocklist_sync.adapters.blocklist_api.sync.queue import PendingOperationQueue
from blocklist_sync.adapters.blocklist_api.sync.state import (
    CredentialStore,
    LocalCache,
    SyncStateStore,
)
from blocklist_sync.adapters.blocklist_api.sync.uploader import BulkUploader, UploadOutcome
from blocklist_sync.config.integrations import DEFAULT_API_URL
from blocklist_sync.core.logging_utils import generate_correlation_id
from blocklist_sync.core.time_utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from contextlib import AbstractAsyncContextManager
    from datetime import datetime

    from blocklist_sync.adapters.blocklist_api.sync.protocols import (
        BlocklistApiClientFactory,
        BlocklistApiClientProtocol,
        KeyValueStore,
    )
    from blocklist_sync.config import AppConfig

logger = logging.getLogger(__name__)


class BlocklistSyncService:
    """Bidirectional sync between the local blocked set and the remote list.

    Every entry point returns a result model instead of raising. Full,
    initial and manual syncs and queue drains are serialized by one in-flight
    lock, so two triggers never reconcile the local cache at the same time.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        backoff_schedule: Sequence[timedelta] = DEFAULT_BACKOFF_SCHEDULE,
        client_factory: BlocklistApiClientFactory | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.api_url = api_url
        self.timeout = timeout
        self._store = store
        self._clock = clock or utc_now
        self._client_factory = client_factory or BlocklistApiClient

        self.cache = LocalCache(store)
        self.credentials = CredentialStore(store)
        self.state = SyncStateStore(store)
        self.queue = PendingOperationQueue(self.state, self._clock)
        self._uploader = BulkUploader(self.queue)
        self._drainer = QueueDrainer(
            queue=self.queue,
            state=self.state,
            backoff_schedule=backoff_schedule,
            clock=self._clock,
        )
        self._sync_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        store: KeyValueStore,
        *,
        client_factory: BlocklistApiClientFactory | None = None,
    ) -> BlocklistSyncService:
        return cls(
            store,
            api_url=cfg.api.api_url,
            timeout=cfg.api.timeout_sec,
            backoff_schedule=[timedelta(seconds=s) for s in cfg.sync.retry_backoff_seconds],
            client_factory=client_factory,
        )

    @property
    def max_retries(self) -> int:
        return self._drainer.max_retries

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_lock.locked()

    def _open_client(
        self, api_key: str
    ) -> AbstractAsyncContextManager[BlocklistApiClientProtocol]:
        return self._client_factory(self.api_url, api_key, self.timeout)

    def subscribe(self, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        """Register for key-value change notifications (status displays use this)."""
        return self._store.subscribe(callback)

    # ------------------------------------------------------------------
    # Sync entry points
    # ------------------------------------------------------------------

    async def perform_full_sync(self) -> FullSyncResult:
        """Union-merge local and remote lists (the daily sync)."""
        async with self._sync_lock:
            return await self._reconcile(event="full_sync")

    async def perform_initial_sync(self) -> FullSyncResult:
        """Reconcile right after an API key has been configured."""
        async with self._sync_lock:
            return await self._reconcile(event="initial_sync")

    async def drain_queue(self, *, force: bool = False) -> DrainResult:
        """Retry due pending operations (the periodic retry pass)."""
        async with self._sync_lock:
            return await self._drain(force=force)

    async def manual_sync(self) -> ManualSyncResult:
        """Full sync, then push every pending operation regardless of its backoff."""
        async with self._sync_lock:
            full_sync = await self._reconcile(event="manual_sync")
            drain = await self._drain(force=True)
        return ManualSyncResult(full_sync=full_sync, drain=drain)

    async def _reconcile(self, *, event: str) -> FullSyncResult:
        correlation_id = generate_correlation_id()
        try:
            api_key = await self._require_api_key()
            logger.info(f"{event}_start", extra={"correlation_id": correlation_id})
            async with self._open_client(api_key) as client:
                # Local state is read before the remote list, so an identity
                # unblocked while the list call is in flight is still in
                # ``local`` and can never land in ``to_download``.
                local = await self.cache.get_all()
                pending_unblocks = [
                    op.identity
                    for op in await self.queue.list()
                    if op.type is OperationType.UNBLOCK
                ]
                remote = [user.identity for user in await client.list()]
                plan = plan_merge(local, remote, pending_unblocks)
                still_blocked = set(await self.cache.get_all())
                upload = await self._uploader.upload(
                    client,
                    [identity for identity in plan.to_upload if identity in still_blocked],
                    correlation_id=correlation_id,
                )

            merged = await self.cache.merge(plan.to_download)
            await self._withdraw_unblocked(upload, merged, correlation_id=correlation_id)
            failed = upload.failed_count
            await self.state.update(
                last_sync_time=self._clock(),
                last_sync_success=failed == 0,
                last_sync_error=f"Failed to upload {failed} users" if failed else None,
            )
            await self.queue.reconcile([*remote, *upload.accepted])
        except NoCredentialError as exc:
            logger.info(f"{event}_skipped_no_api_key", extra={"correlation_id": correlation_id})
            return FullSyncResult(success=False, reason=exc.reason)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.exception(
                f"{event}_failed", extra={"correlation_id": correlation_id, "error": error}
            )
            await self._record_failure(error, correlation_id=correlation_id)
            return FullSyncResult(success=False, error=error)

        result = FullSyncResult(
            success=True,
            user_count=len(merged),
            uploaded=upload.uploaded,
            downloaded=len(plan.to_download),
            upload_failed=upload.failed_count,
        )
        logger.info(
            f"{event}_complete",
            extra={"correlation_id": correlation_id, **result.model_dump(exclude={"error"})},
        )
        return result

    async def _withdraw_unblocked(
        self, upload: UploadOutcome, merged: list[str], *, correlation_id: str
    ) -> None:
        """Undo upload side effects for identities the user unblocked mid-upload.

        An accepted identity is now blocked remotely and needs an Unblock op;
        a failed one must not keep the Block op the uploader queued for it.
        """
        current = set(merged)
        reblocked = [identity for identity in upload.accepted if identity not in current]
        requeued = [identity for identity in upload.failed if identity not in current]
        for identity in requeued:
            await self.queue.remove(identity, OperationType.BLOCK)
        if reblocked:
            await self.queue.add_many(OperationType.UNBLOCK, reblocked)
        if reblocked or requeued:
            logger.info(
                "sync_upload_withdrawn",
                extra={
                    "correlation_id": correlation_id,
                    "unblock_queued": len(reblocked),
                    "block_dropped": len(requeued),
                },
            )

    async def _drain(self, *, force: bool) -> DrainResult:
        correlation_id = generate_correlation_id()
        try:
            api_key = await self._require_api_key()
            async with self._open_client(api_key) as client:
                return await self._drainer.drain(
                    client, force=force, correlation_id=correlation_id
                )
        except NoCredentialError as exc:
            return DrainResult(success=False, reason=exc.reason)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.exception(
                "queue_drain_failed", extra={"correlation_id": correlation_id, "error": error}
            )
            await self._record_failure(error, correlation_id=correlation_id)
            return DrainResult(success=False, errors=[error])

    async def _require_api_key(self) -> str:
        api_key = await self.credentials.get()
        if not api_key:
            raise NoCredentialError("No API key configured")
        return api_key

    async def _record_failure(self, error: str, *, correlation_id: str) -> None:
        try:
            await self.state.update(last_sync_success=False, last_sync_error=error)
        except Exception:
            logger.exception("sync_state_update_failed", extra={"correlation_id": correlation_id})

    # ------------------------------------------------------------------
    # Optimistic local mutations
    # ------------------------------------------------------------------

    async def block(self, identity: str) -> MutationResult:
        """Block locally at once, then try to confirm remotely."""
        identity = identity.strip()
        if not identity:
            return MutationResult(identity=identity, success=False, error="Username is required")
        try:
            if not await self.cache.add(identity):
                return MutationResult(
                    identity=identity, success=False, error="User is already blocked"
                )
            await self.queue.remove(identity, OperationType.UNBLOCK)
            return await self._push(identity, OperationType.BLOCK)
        except Exception as exc:
            logger.exception("block_failed", extra={"identity": identity})
            return MutationResult(identity=identity, success=False, error=str(exc))

    async def unblock(self, identity: str) -> MutationResult:
        """Unblock locally at once; a non-retryable remote refusal rolls it back."""
        identity = identity.strip()
        try:
            if not await self.cache.remove(identity):
                return MutationResult(
                    identity=identity, success=False, error="User is not blocked"
                )
            # Cancel a queued block before pushing so a concurrent drain cannot
            # re-block the identity; a rollback puts the entry back.
            pending_block = await self.queue.get(identity, OperationType.BLOCK)
            if pending_block is not None:
                await self.queue.remove(identity, OperationType.BLOCK)
            result = await self._push(identity, OperationType.UNBLOCK)
            if result.error and not result.queued:
                await self.cache.add(identity)
                if pending_block is not None:
                    await self.queue.restore(pending_block)
                result.success = False
                result.rolled_back = True
            return result
        except Exception as exc:
            logger.exception("unblock_failed", extra={"identity": identity})
            return MutationResult(identity=identity, success=False, error=str(exc))

    async def _push(self, identity: str, op_type: OperationType) -> MutationResult:
        result = MutationResult(identity=identity)
        api_key = await self.credentials.get()
        if not api_key:
            return result

        try:
            async with self._open_client(api_key) as client:
                if op_type is OperationType.BLOCK:
                    await client.add(identity)
                else:
                    await client.remove(identity)
        except Exception as exc:
            result.error = str(exc) or type(exc).__name__
            if is_retryable_error(exc):
                await self.queue.add(op_type, identity, last_error=result.error)
                result.queued = True
            logger.warning(
                "mutation_sync_failed",
                extra={
                    "identity": identity,
                    "operation_type": op_type.value,
                    "queued": result.queued,
                    "error": result.error,
                },
            )
            return result

        await self.queue.remove(identity, op_type)
        await self.state.update(
            last_sync_time=self._clock(), last_sync_success=True, last_sync_error=None
        )
        result.synced = True
        return result

    async def clear_all(self) -> ClearAllResult:
        """Unblock everyone locally, queue remote unblocks and push them immediately."""
        users = await self.cache.get_all()
        await self.cache.replace([])
        result = ClearAllResult(cleared=len(users))
        if not users or not await self.credentials.get():
            return result

        for identity in users:
            await self.queue.remove(identity, OperationType.BLOCK)
        result.queued = await self.queue.add_many(OperationType.UNBLOCK, users)
        result.sync = await self.manual_sync()
        return result

    # ------------------------------------------------------------------
    # Credential and status
    # ------------------------------------------------------------------

    async def set_api_key(self, api_key: str) -> FullSyncResult:
        """Store the API key and run the initial sync."""
        try:
            await self.credentials.set(api_key)
        except ValueError as exc:
            return FullSyncResult(success=False, error=str(exc))
        logger.info("api_key_configured")
        return await self.perform_initial_sync()

    async def clear_api_key(self) -> None:
        await self.credentials.clear()
        logger.info("api_key_cleared")

    async def check_connection(self) -> ConnectionCheck:
        try:
            api_key = await self._require_api_key()
        except NoCredentialError as exc:
            return ConnectionCheck(success=False, error=str(exc))
        async with self._open_client(api_key) as client:
            return await client.check_connection()

    async def get_status(self) -> SyncStatus:
        state = await self.state.load()
        return SyncStatus(
            has_api_key=bool(await self.credentials.get()),
            blocked_count=len(await self.cache.get_all()),
            state=state,
            abandoned=[op for op in state.pending_operations if op.is_abandoned(self.max_retries)],
        )

    async def clear_sync_data(self) -> None:
        """Forget sync bookkeeping, including the pending queue."""
        await self.state.clear()
        logger.info("sync_state_cleared")
