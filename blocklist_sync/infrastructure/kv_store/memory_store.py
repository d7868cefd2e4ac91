from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Fan-out of ``(key, new_value)`` change notifications to subscribers."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[str, Any], None]] = []

    def subscribe(self, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def notify(self, key: str, value: Any) -> None:
        for callback in list(self._callbacks):
            try:
                callback(key, value)
            except Exception:
                # A broken listener must not fail the write that triggered it.
                logger.exception("kv_change_callback_failed", extra={"key": key})


class InMemoryKeyValueStore:
    """Process-local store; values are JSON round-tripped like a real backend."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        self._notifier = ChangeNotifier()
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)
        self._notifier.notify(key, json.loads(self._data[key]))

    async def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._notifier.notify(key, None)

    def subscribe(self, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        return self._notifier.subscribe(callback)
