from __future__ import annotations

from ._validators import _parse_backoff_schedule
from .integrations import BlocklistApiConfig
from .redis import RedisConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config
from .sync import SyncConfig

__all__ = [
    "AppConfig",
    "BlocklistApiConfig",
    "RedisConfig",
    "RuntimeConfig",
    "Settings",
    "SyncConfig",
    "_parse_backoff_schedule",
    "load_config",
]
