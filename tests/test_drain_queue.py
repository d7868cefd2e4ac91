"""Tests for the pending-operation retry pass and manual sync."""

from __future__ import annotations

import json
from datetime import timedelta

import httpx
import pytest

from blocklist_sync.adapters.blocklist_api.client import BlocklistApiClient
from blocklist_sync.adapters.blocklist_api.errors import (
    AuthError,
    ClientError,
    NetworkError,
    ServerError,
)
from blocklist_sync.adapters.blocklist_api.models import OperationType
from blocklist_sync.adapters.blocklist_api.sync.constants import BLOCKED_USERS_KEY
from blocklist_sync.adapters.blocklist_api.sync.drain import next_retry_delay
from blocklist_sync.adapters.blocklist_api.sync.service import BlocklistSyncService
from blocklist_sync.infrastructure.kv_store import InMemoryKeyValueStore
from tests.conftest import START, FakeBlocklistClient, FakeClock, seed_store

HOUR = timedelta(hours=1)


@pytest.mark.asyncio
async def test_drain_without_api_key(service: BlocklistSyncService, store, remote):
    await seed_store(store, api_key=None)
    await service.queue.add(OperationType.BLOCK, "alice")

    result = await service.drain_queue()

    assert result.success is False
    assert result.reason == "no_api_key"
    assert remote.calls == []
    assert len(await service.queue.list()) == 1


@pytest.mark.asyncio
async def test_successful_ops_are_removed(
    service: BlocklistSyncService, store: InMemoryKeyValueStore, remote: FakeBlocklistClient
):
    await seed_store(store)
    remote.remote = ["bob"]
    await service.queue.add(OperationType.BLOCK, "alice")
    await service.queue.add(OperationType.UNBLOCK, "bob")

    result = await service.drain_queue()

    assert result.success is True
    assert result.attempted == 2
    assert result.succeeded == 2
    assert await service.queue.list() == []
    assert remote.remote == ["alice"]
    state = await service.state.load()
    assert state.last_sync_success is True
    assert state.last_sync_time == START


@pytest.mark.asyncio
async def test_retryable_failures_follow_backoff_until_abandoned(
    service: BlocklistSyncService,
    store: InMemoryKeyValueStore,
    remote: FakeBlocklistClient,
    clock: FakeClock,
):
    await seed_store(store)
    remote.add_errors["alice"] = ServerError("HTTP 502", status_code=502)
    await service.queue.add(OperationType.BLOCK, "alice")

    expected = [HOUR, 4 * HOUR, 12 * HOUR]
    for attempt, delay in enumerate(expected, start=1):
        result = await service.drain_queue()
        assert result.rescheduled == 1

        (op,) = await service.queue.list()
        assert op.retry_count == attempt
        assert op.next_retry_time == clock.now + delay
        assert op.last_error == "HTTP 502"

        # not due yet
        result = await service.drain_queue()
        assert result.attempted == 0
        assert result.skipped_not_due == 1

        clock.advance(delay)

    result = await service.drain_queue()

    assert result.attempted == 0
    assert result.skipped_abandoned == 1
    assert len(remote.calls_named("add")) == 3
    assert [op.identity for op in (await service.get_status()).abandoned] == ["alice"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        AuthError("Invalid API key", status_code=401),
        ClientError("Bad username", status_code=400),
    ],
)
async def test_non_retryable_failure_drops_op(
    service: BlocklistSyncService,
    store: InMemoryKeyValueStore,
    remote: FakeBlocklistClient,
    error: Exception,
):
    await seed_store(store)
    remote.add_errors["alice"] = error
    await service.queue.add(OperationType.BLOCK, "alice", retry_count=1)

    result = await service.drain_queue()

    assert result.dropped == 1
    assert result.success is False
    assert await service.queue.list() == []
    assert (await service.state.load()).last_sync_error == str(error)


@pytest.mark.asyncio
async def test_future_op_untouched_by_drain_but_attempted_by_manual_sync(
    service: BlocklistSyncService,
    store: InMemoryKeyValueStore,
    remote: FakeBlocklistClient,
):
    await seed_store(store, users=[])
    remote.remote = ["alice"]
    await service.queue.add(OperationType.UNBLOCK, "alice", next_retry_time=START + HOUR)

    drained = await service.drain_queue()

    assert drained.attempted == 0
    assert drained.skipped_not_due == 1
    assert remote.calls_named("remove") == []

    manual = await service.manual_sync()

    assert manual.full_sync.success is True
    assert manual.drain.attempted == 1
    assert manual.pending_processed == 1
    assert manual.pending_failed == 0
    assert remote.calls_named("remove") == ["alice"]
    assert await service.queue.list() == []


@pytest.mark.asyncio
async def test_manual_sync_retries_abandoned_ops(
    service: BlocklistSyncService, store: InMemoryKeyValueStore, remote: FakeBlocklistClient
):
    await seed_store(store, users=[])
    remote.remote = ["bob"]
    await service.queue.add(OperationType.UNBLOCK, "bob", retry_count=3)

    manual = await service.manual_sync()

    assert manual.drain.succeeded == 1
    assert remote.remote == []


@pytest.mark.asyncio
async def test_forced_retry_past_ceiling_reuses_last_step(
    service: BlocklistSyncService,
    store: InMemoryKeyValueStore,
    remote: FakeBlocklistClient,
    clock: FakeClock,
):
    await seed_store(store)
    remote.remove_errors["bob"] = NetworkError("Request timeout")
    await service.queue.add(OperationType.UNBLOCK, "bob", retry_count=3)

    result = await service.drain_queue(force=True)

    (op,) = await service.queue.list()
    assert result.rescheduled == 1
    assert op.retry_count == 4
    assert op.next_retry_time == clock.now + 12 * HOUR


def test_next_retry_delay_clamps():
    schedule = (HOUR, 4 * HOUR)
    assert next_retry_delay(schedule, 0) == HOUR
    assert next_retry_delay(schedule, 1) == HOUR
    assert next_retry_delay(schedule, 2) == 4 * HOUR
    assert next_retry_delay(schedule, 9) == 4 * HOUR


def _conflict_transport(calls: list[tuple[str, str]]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.raw_path.decode()))
        if request.method == "POST":
            return httpx.Response(409, json={"error": "User is already blocked"})
        if request.method == "DELETE":
            return httpx.Response(404, json={"error": "User is not blocked"})
        return httpx.Response(200, json={"users": []})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_conflict_and_not_found_remove_ops(store: InMemoryKeyValueStore, clock: FakeClock):
    calls: list[tuple[str, str]] = []
    transport = _conflict_transport(calls)

    def factory(api_url: str, api_key: str, timeout: float) -> BlocklistApiClient:
        return BlocklistApiClient(api_url, api_key, timeout, transport=transport)

    service = BlocklistSyncService(store, client_factory=factory, clock=clock)
    await seed_store(store)
    await service.queue.add(OperationType.BLOCK, "alice")
    await service.queue.add(OperationType.UNBLOCK, "bob smith")

    result = await service.drain_queue()

    assert result.succeeded == 2
    assert await service.queue.list() == []
    assert ("POST", "/blocked-users") in calls
    assert ("DELETE", "/blocked-users/bob%20smith") in calls


@pytest.mark.asyncio
async def test_server_error_over_http_reschedules(store: InMemoryKeyValueStore, clock: FakeClock):
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"username": "alice"}
        return httpx.Response(503, json={"error": "Service unavailable"})

    transport = httpx.MockTransport(handler)

    def factory(api_url: str, api_key: str, timeout: float) -> BlocklistApiClient:
        return BlocklistApiClient(api_url, api_key, timeout, transport=transport)

    service = BlocklistSyncService(store, client_factory=factory, clock=clock)
    await seed_store(store)
    await service.queue.add(OperationType.BLOCK, "alice")

    result = await service.drain_queue()

    (op,) = await service.queue.list()
    assert result.rescheduled == 1
    assert op.last_error == "Service unavailable"


@pytest.mark.asyncio
async def test_unblock_during_drain_cancels_queued_block(
    store: InMemoryKeyValueStore, clock: FakeClock
):
    holder: dict[str, BlocklistSyncService] = {}

    class InterleavingClient(FakeBlocklistClient):
        async def add(self, identity: str) -> None:
            await super().add(identity)
            if identity == "xavier":
                # The user unblocks yolanda while the drain is mid-pass.
                await holder["service"].unblock("yolanda")

    client = InterleavingClient()
    service = BlocklistSyncService(store, client_factory=client.factory, clock=clock)
    holder["service"] = service
    await seed_store(store, users=["xavier", "yolanda"])
    await service.queue.add(OperationType.BLOCK, "xavier")
    await service.queue.add(OperationType.BLOCK, "yolanda")

    result = await service.drain_queue()

    assert result.attempted == 1
    assert result.succeeded == 1
    assert client.calls == [("add", "xavier"), ("remove", "yolanda")]
    assert client.remote == ["xavier"]
    assert await service.queue.list() == []

    await service.perform_full_sync()

    assert await store.get(BLOCKED_USERS_KEY) == ["xavier"]
