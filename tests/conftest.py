"""Pytest configuration and shared fixtures.

This module provides an in-process fake of the remote blocklist API, a
controllable clock and a service wired to an in-memory key-value store.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from blocklist_sync.adapters.blocklist_api.models import (
    BulkBlockItemResult,
    BulkBlockResult,
    ConnectionCheck,
    RemoteBlockedUser,
)
from blocklist_sync.adapters.blocklist_api.sync.constants import (
    API_KEY_KEY,
    BLOCKED_USERS_KEY,
    SYNC_STATE_KEY,
)
from blocklist_sync.adapters.blocklist_api.sync.service import BlocklistSyncService
from blocklist_sync.infrastructure.kv_store import InMemoryKeyValueStore

START = datetime(2025, 6, 15, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeBlocklistClient:
    """Remote list held in memory, with switchable failures per call."""

    def __init__(self, remote: list[str] | None = None) -> None:
        self.remote: list[str] = list(remote or [])
        self.list_error: Exception | None = None
        self.bulk_error: Exception | None = None
        self.bulk_failures: dict[str, str] = {}
        self.add_errors: dict[str, Exception] = {}
        self.remove_errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, Any]] = []
        self.opened_with: list[tuple[str, str, float]] = []

    def factory(self, api_url: str, api_key: str, timeout: float) -> FakeBlocklistClient:
        self.opened_with.append((api_url, api_key, timeout))
        return self

    async def __aenter__(self) -> FakeBlocklistClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        return None

    async def list(self) -> list[RemoteBlockedUser]:
        self.calls.append(("list", None))
        if self.list_error:
            raise self.list_error
        return [RemoteBlockedUser(identity=identity) for identity in self.remote]

    async def add(self, identity: str) -> None:
        self.calls.append(("add", identity))
        if identity in self.add_errors:
            raise self.add_errors[identity]
        if identity not in self.remote:
            self.remote.append(identity)

    async def remove(self, identity: str) -> None:
        self.calls.append(("remove", identity))
        if identity in self.remove_errors:
            raise self.remove_errors[identity]
        if identity in self.remote:
            self.remote.remove(identity)

    async def bulk_add(self, identities: list[str]) -> BulkBlockResult:
        self.calls.append(("bulk_add", list(identities)))
        if self.bulk_error:
            raise self.bulk_error
        results = []
        successful = 0
        for identity in identities:
            message = self.bulk_failures.get(identity)
            if message is not None:
                results.append(
                    BulkBlockItemResult(identity=identity, success=False, message=message)
                )
                continue
            if identity not in self.remote:
                self.remote.append(identity)
            successful += 1
            results.append(BulkBlockItemResult(identity=identity, success=True))
        return BulkBlockResult(successful=successful, results=results)

    async def check_connection(self) -> ConnectionCheck:
        self.calls.append(("check_connection", None))
        return ConnectionCheck(success=self.list_error is None)

    def calls_named(self, name: str) -> list[Any]:
        return [arg for call, arg in self.calls if call == name]


async def seed_store(
    store: InMemoryKeyValueStore,
    *,
    users: list[str] | None = None,
    api_key: str | None = "test-api-key",
    state: dict[str, Any] | None = None,
) -> None:
    """Populate the keys the sync engine reads."""
    if users is not None:
        await store.set(BLOCKED_USERS_KEY, users)
    if api_key is not None:
        await store.set(API_KEY_KEY, api_key)
    if state is not None:
        await store.set(SYNC_STATE_KEY, state)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def remote() -> FakeBlocklistClient:
    return FakeBlocklistClient()


@pytest.fixture
def service(
    store: InMemoryKeyValueStore, remote: FakeBlocklistClient, clock: FakeClock
) -> BlocklistSyncService:
    return BlocklistSyncService(store, client_factory=remote.factory, clock=clock)
