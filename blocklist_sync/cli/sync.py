"""Command-line entry point for the blocklist sync engine.

Usage:
    blocklist-sync sync              # full sync, then push every pending operation
    blocklist-sync full-sync         # daily union merge only
    blocklist-sync drain [--force]   # retry due pending operations
    blocklist-sync block USERNAME
    blocklist-sync run               # start the scheduler and keep running
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from blocklist_sync.adapters.blocklist_api.sync.service import BlocklistSyncService
from blocklist_sync.config import load_config
from blocklist_sync.core.logging_utils import setup_json_logging
from blocklist_sync.infrastructure.kv_store import build_store
from blocklist_sync.infrastructure.redis import close_redis
from blocklist_sync.services.scheduler import SchedulerService

if TYPE_CHECKING:
    from pydantic import BaseModel

    from blocklist_sync.config import AppConfig

logger = logging.getLogger(__name__)


def _print_result(result: BaseModel) -> None:
    print(result.model_dump_json(indent=2))


async def _run_scheduler(cfg: AppConfig, service: BlocklistSyncService) -> int:
    scheduler = SchedulerService(cfg, service)
    await scheduler.start()
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("scheduler_run_cancelled")
    finally:
        await scheduler.stop()
    return 0


async def _dispatch(args: argparse.Namespace, cfg: AppConfig) -> int:
    store = await build_store(cfg)
    service = BlocklistSyncService.from_config(cfg, store)
    command = args.command

    if command == "run":
        return await _run_scheduler(cfg, service)
    if command == "clear-key":
        await service.clear_api_key()
        print("API key cleared")
        return 0
    if command == "status":
        _print_result(await service.get_status())
        return 0

    if command == "sync":
        manual = await service.manual_sync()
        _print_result(manual)
        return 0 if manual.full_sync.success and manual.drain.success else 1
    if command == "clear-all":
        cleared = await service.clear_all()
        _print_result(cleared)
        if cleared.sync is None:
            return 0
        return 0 if cleared.sync.full_sync.success and cleared.sync.drain.success else 1

    if command == "full-sync":
        result = await service.perform_full_sync()
    elif command == "initial-sync":
        result = await service.perform_initial_sync()
    elif command == "drain":
        result = await service.drain_queue(force=args.force)
    elif command == "block":
        result = await service.block(args.username)
    elif command == "unblock":
        result = await service.unblock(args.username)
    elif command == "set-key":
        result = await service.set_api_key(args.api_key)
    elif command == "check":
        result = await service.check_connection()
    else:
        msg = f"Unknown command: {command}"
        raise ValueError(msg)

    _print_result(result)
    return 0 if result.success else 1


async def run_command(args: argparse.Namespace) -> int:
    """Load configuration, execute one command and return the exit code."""
    try:
        cfg = load_config()
    except RuntimeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    setup_json_logging(
        cfg.runtime.log_level,
        use_loguru=cfg.runtime.use_loguru,
        log_file=cfg.runtime.log_file,
    )

    try:
        return await _dispatch(args, cfg)
    except Exception as e:
        logger.exception("cli_command_failed", extra={"command": args.command})
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1
    finally:
        await close_redis()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blocklist-sync",
        description="Reconcile the local blocked-user list with the remote blocklist service",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sync", help="Full sync, then retry every pending operation now")
    sub.add_parser("full-sync", help="Union-merge local and remote lists")
    sub.add_parser("initial-sync", help="Reconcile after configuring an API key")

    drain = sub.add_parser("drain", help="Retry pending operations that are due")
    drain.add_argument(
        "--force",
        action="store_true",
        help="Ignore backoff times and the retry ceiling",
    )

    sub.add_parser("status", help="Show sync state and pending operations")

    block = sub.add_parser("block", help="Block a user locally and remotely")
    block.add_argument("username")
    unblock = sub.add_parser("unblock", help="Unblock a user locally and remotely")
    unblock.add_argument("username")
    sub.add_parser("clear-all", help="Unblock every user")

    set_key = sub.add_parser("set-key", help="Store the API key and run the initial sync")
    set_key.add_argument("api_key")
    sub.add_parser("clear-key", help="Forget the API key (offline mode)")
    sub.add_parser("check", help="Check connectivity and credentials")
    sub.add_parser("run", help="Run the periodic full sync and queue drain")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
