"""Process-wide Redis connection backing the synchronized key-value store.

The connection is opened lazily on first use and shared by every store handle
in the process. A failed ping leaves no client behind, so the next call retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import redis.asyncio as aioredis

if TYPE_CHECKING:
    from blocklist_sync.config import AppConfig, RedisConfig

logger = logging.getLogger(__name__)

_client: aioredis.Redis | None = None
_connect_lock = asyncio.Lock()


def redis_key(prefix: str, *parts: str) -> str:
    """Join a store prefix and key parts with ':', dropping empty parts."""
    return ":".join([prefix, *(part for part in parts if part)])


def _safe_location(url: str) -> str:
    # Log host/db only; the URL may embed credentials.
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.hostname or ''}{parts.path}"


async def _open(settings: RedisConfig) -> aioredis.Redis:
    client = aioredis.from_url(
        settings.connection_url,
        password=settings.password,
        socket_timeout=settings.socket_timeout,
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    return client


async def get_redis(cfg: AppConfig) -> aioredis.Redis | None:
    """Return the shared client, connecting on first use.

    None means the caller should run on a process-local store: Redis is
    disabled, or it is unreachable and ``REDIS_REQUIRED`` is off.
    """
    global _client

    settings = cfg.redis
    if not settings.enabled:
        return None
    if _client is not None:
        return _client

    async with _connect_lock:
        if _client is None:
            location = _safe_location(settings.connection_url)
            try:
                _client = await _open(settings)
            except Exception:
                logger.warning(
                    "kv_redis_unreachable",
                    exc_info=True,
                    extra={"location": location, "required": settings.required},
                )
                if settings.required:
                    raise
                return None
            logger.info(
                "kv_redis_connected",
                extra={"location": location, "prefix": settings.prefix},
            )
    return _client


async def close_redis() -> None:
    global _client
    client, _client = _client, None
    if client is not None:
        await client.aclose()
        logger.info("kv_redis_closed")
