"""Key-value store backends for the local blocked set and sync state."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blocklist_sync.infrastructure.kv_store.memory_store import InMemoryKeyValueStore
from blocklist_sync.infrastructure.kv_store.redis_store import RedisKeyValueStore
from blocklist_sync.infrastructure.redis import get_redis

if TYPE_CHECKING:
    from blocklist_sync.adapters.blocklist_api.sync.protocols import KeyValueStore
    from blocklist_sync.config import AppConfig

logger = logging.getLogger(__name__)


async def build_store(cfg: AppConfig) -> KeyValueStore:
    """Return the Redis-backed store, or an in-memory one when Redis is off or down."""
    client = await get_redis(cfg)
    if client is None:
        logger.warning(
            "kv_store_in_memory_fallback",
            extra={"redis_enabled": cfg.redis.enabled},
        )
        return InMemoryKeyValueStore()
    return RedisKeyValueStore(client, prefix=cfg.redis.prefix)


__all__ = ["InMemoryKeyValueStore", "RedisKeyValueStore", "build_store"]
