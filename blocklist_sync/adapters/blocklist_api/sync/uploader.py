"""Bulk upload of local-only identities."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from blocklist_sync.adapters.blocklist_api.errors import BlocklistApiError
from blocklist_sync.adapters.blocklist_api.models import OperationType
from blocklist_sync.adapters.blocklist_api.sync.constants import ALREADY_BLOCKED_MESSAGE

if TYPE_CHECKING:
    from blocklist_sync.adapters.blocklist_api.sync.protocols import BlocklistApiClientProtocol
    from blocklist_sync.adapters.blocklist_api.sync.queue import PendingOperationQueue

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    uploaded: int = 0
    failed: list[str] = field(default_factory=list)
    accepted: list[str] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


class BulkUploader:
    """Uploads identities in one bulk call and queues whatever did not stick."""

    def __init__(self, queue: PendingOperationQueue) -> None:
        self._queue = queue

    async def upload(
        self,
        client: BlocklistApiClientProtocol,
        identities: list[str],
        *,
        correlation_id: str,
    ) -> UploadOutcome:
        outcome = UploadOutcome()
        if not identities:
            return outcome

        try:
            result = await client.bulk_add(identities)
        except Exception as exc:
            logger.warning(
                "bulk_upload_failed",
                exc_info=not isinstance(exc, BlocklistApiError),
                extra={
                    "correlation_id": correlation_id,
                    "count": len(identities),
                    "error": str(exc),
                },
            )
            outcome.failed = list(identities)
            await self._queue.add_many(OperationType.BLOCK, identities)
            return outcome

        outcome.uploaded = result.successful
        for item in result.results:
            if item.success or item.message == ALREADY_BLOCKED_MESSAGE:
                continue
            outcome.failed.append(item.identity)
            logger.info(
                "bulk_upload_item_failed",
                extra={
                    "correlation_id": correlation_id,
                    "identity": item.identity,
                    "error": item.message,
                },
            )

        failed = set(outcome.failed)
        outcome.accepted = [identity for identity in identities if identity not in failed]

        if outcome.failed:
            await self._queue.add_many(OperationType.BLOCK, outcome.failed)
        return outcome
