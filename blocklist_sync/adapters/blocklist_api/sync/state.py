"""Persisted state handles over the key-value store.

Each handle owns one key and serializes its read-modify-write cycles with an
``asyncio.Lock``, so concurrent tasks in the same process never lose an
update. The locks are never held across a remote API call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from blocklist_sync.adapters.blocklist_api.models import SyncState
from blocklist_sync.adapters.blocklist_api.sync.constants import (
    API_KEY_KEY,
    BLOCKED_USERS_KEY,
    SYNC_STATE_KEY,
)
from blocklist_sync.adapters.blocklist_api.sync.merge import dedupe

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from blocklist_sync.adapters.blocklist_api.sync.protocols import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalCache:
    """The local blocked set, persisted as an ordered list."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def _read(self) -> list[str]:
        raw = await self._store.get(BLOCKED_USERS_KEY)
        if not raw:
            return []
        if not isinstance(raw, list):
            logger.warning("local_cache_malformed", extra={"value_type": type(raw).__name__})
            return []
        return dedupe(str(identity) for identity in raw)

    async def get_all(self) -> list[str]:
        return await self._read()

    async def replace(self, identities: Iterable[str]) -> list[str]:
        async with self._lock:
            users = dedupe(identities)
            await self._store.set(BLOCKED_USERS_KEY, users)
            return users

    async def add(self, identity: str) -> bool:
        """Add one identity; returns False when it was already present."""
        async with self._lock:
            users = await self._read()
            if identity in users:
                return False
            users.append(identity)
            await self._store.set(BLOCKED_USERS_KEY, users)
            return True

    async def remove(self, identity: str) -> bool:
        """Remove one identity; returns False when it was not present."""
        async with self._lock:
            users = await self._read()
            if identity not in users:
                return False
            await self._store.set(BLOCKED_USERS_KEY, [u for u in users if u != identity])
            return True

    async def merge(self, additions: Iterable[str]) -> list[str]:
        """Union ``additions`` into the set as it is *now*, never removing anything.

        Re-reading under the lock keeps blocks and unblocks made while a sync
        pass was talking to the remote.
        """
        async with self._lock:
            users = await self._read()
            merged = dedupe([*users, *additions])
            if merged != users:
                await self._store.set(BLOCKED_USERS_KEY, merged)
            return merged


class CredentialStore:
    """The API key; its absence puts the engine in offline mode."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def get(self) -> str | None:
        value = await self._store.get(API_KEY_KEY)
        if not value or not isinstance(value, str):
            return None
        return value

    async def set(self, api_key: str) -> None:
        key = api_key.strip()
        if not key:
            msg = "API key cannot be empty"
            raise ValueError(msg)
        if any(char in key for char in (" ", "\n", "\t")):
            msg = "API key contains invalid characters"
            raise ValueError(msg)
        await self._store.set(API_KEY_KEY, key)

    async def clear(self) -> None:
        await self._store.remove(API_KEY_KEY)


class SyncStateStore:
    """Single-writer handle for the persisted :class:`SyncState` record."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def _read(self) -> SyncState:
        raw: Any = await self._store.get(SYNC_STATE_KEY)
        if raw is None:
            return SyncState()
        try:
            return SyncState.model_validate(raw)
        except ValidationError:
            logger.warning("sync_state_malformed_reset", exc_info=True)
            return SyncState()

    async def load(self) -> SyncState:
        return await self._read()

    async def mutate(self, fn: Callable[[SyncState], T]) -> T:
        """Apply ``fn`` to the current state under the lock and persist any change."""
        async with self._lock:
            state = await self._read()
            before = state.to_storage()
            result = fn(state)
            after = state.to_storage()
            if after != before:
                await self._store.set(SYNC_STATE_KEY, after)
            return result

    async def update(self, **fields: Any) -> SyncState:
        """Shallow-merge ``fields`` into the record, like a partial patch."""

        def _apply(state: SyncState) -> SyncState:
            for name, value in fields.items():
                setattr(state, name, value)
            return state

        return await self.mutate(_apply)

    async def clear(self) -> None:
        async with self._lock:
            await self._store.remove(SYNC_STATE_KEY)
