"""Tests for the blocklist-sync command-line entry point."""

from __future__ import annotations

import json

import pytest

from blocklist_sync.cli import sync as cli
from blocklist_sync.infrastructure.kv_store import InMemoryKeyValueStore
from tests.conftest import FakeBlocklistClient, seed_store


@pytest.fixture
def kv(monkeypatch: pytest.MonkeyPatch) -> InMemoryKeyValueStore:
    store = InMemoryKeyValueStore()

    async def fake_build_store(_cfg):
        return store

    monkeypatch.setattr(cli, "build_store", fake_build_store)
    monkeypatch.setattr(cli, "setup_json_logging", lambda *_a, **_k: None)
    return store


@pytest.fixture
def remote(monkeypatch: pytest.MonkeyPatch) -> FakeBlocklistClient:
    fake = FakeBlocklistClient(["carol"])
    original = cli.BlocklistSyncService.from_config

    def from_config(cfg, store, *, client_factory=None):
        return original(cfg, store, client_factory=fake.factory)

    monkeypatch.setattr(cli.BlocklistSyncService, "from_config", staticmethod(from_config))
    return fake


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_drain_force_flag():
    args = cli.build_parser().parse_args(["drain", "--force"])

    assert args.command == "drain"
    assert args.force is True


@pytest.mark.asyncio
async def test_full_sync_offline_exits_nonzero(kv, remote, capsys):
    args = cli.build_parser().parse_args(["full-sync"])

    assert await cli.run_command(args) == 1
    assert json.loads(capsys.readouterr().out)["reason"] == "no_api_key"


@pytest.mark.asyncio
async def test_sync_and_status(kv, remote, capsys):
    await seed_store(kv, users=["alice"])

    assert await cli.run_command(cli.build_parser().parse_args(["sync"])) == 0
    sync_output = json.loads(capsys.readouterr().out)
    assert sync_output["full_sync"]["user_count"] == 2
    assert sync_output["pending_processed"] == 0

    assert await cli.run_command(cli.build_parser().parse_args(["status"])) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["has_api_key"] is True
    assert status["blocked_count"] == 2


@pytest.mark.asyncio
async def test_block_command(kv, remote, capsys):
    await seed_store(kv, users=[])

    assert await cli.run_command(cli.build_parser().parse_args(["block", "mallory"])) == 0
    assert json.loads(capsys.readouterr().out)["synced"] is True
    assert "mallory" in remote.remote
