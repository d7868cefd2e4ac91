from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from blocklist_sync.infrastructure.kv_store.memory_store import ChangeNotifier
from blocklist_sync.infrastructure.redis import redis_key

if TYPE_CHECKING:
    from collections.abc import Callable

    import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class RedisKeyValueStore:
    """JSON values in Redis, shared by every device pointing at the same server.

    Unlike the fail-open response caches, errors here propagate: losing a
    write would silently drop a block or a pending operation.
    """

    def __init__(self, client: aioredis.Redis, *, prefix: str) -> None:
        self._client = client
        self._prefix = prefix
        self._notifier = ChangeNotifier()

    def _key(self, key: str) -> str:
        return redis_key(self._prefix, key)

    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("kv_store_decode_failed", extra={"key": key})
            return None

    async def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        await self._client.set(self._key(key), payload)
        self._notifier.notify(key, json.loads(payload))

    async def remove(self, key: str) -> None:
        removed = await self._client.delete(self._key(key))
        if removed:
            self._notifier.notify(key, None)

    def subscribe(self, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        return self._notifier.subscribe(callback)
