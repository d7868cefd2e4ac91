"""Protocol definitions (ports) for blocklist sync.

The engine only talks to these interfaces, so the HTTP client, the
key-value backend and the timer facility can be swapped or faked freely.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from contextlib import AbstractAsyncContextManager
    from datetime import timedelta

    from blocklist_sync.adapters.blocklist_api.models import (
        BulkBlockResult,
        ConnectionCheck,
        RemoteBlockedUser,
    )


class BlocklistApiClientProtocol(Protocol):
    async def list(self) -> list[RemoteBlockedUser]: ...

    async def add(self, identity: str) -> None: ...

    async def remove(self, identity: str) -> None: ...

    async def bulk_add(self, identities: list[str]) -> BulkBlockResult: ...

    async def check_connection(self) -> ConnectionCheck: ...


class BlocklistApiClientFactory(Protocol):
    def __call__(
        self, api_url: str, api_key: str, timeout: float
    ) -> AbstractAsyncContextManager[BlocklistApiClientProtocol]: ...


class KeyValueStore(Protocol):
    """Durable, synchronized JSON key-value store with change notifications."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...

    def subscribe(self, callback: Callable[[str, Any], None]) -> Callable[[], None]: ...


class RecurringScheduler(Protocol):
    """Host timer facility able to invoke a coroutine function periodically."""

    def add_recurring(
        self,
        job_id: str,
        callback: Callable[[], Awaitable[Any]],
        *,
        interval: timedelta,
        first_run_delay: timedelta,
    ) -> None: ...

    def start(self) -> None: ...

    def shutdown(self) -> None: ...
