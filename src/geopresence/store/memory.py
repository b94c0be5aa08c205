"""In-process status store.

Keeps the latest value per key, stamps a server time on every write and
fans each overwrite out to all attached listeners. Used for single-process
deployments and as the reference backend in tests.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from geopresence.exceptions import StoreSubscribeError, StoreWriteError
from geopresence.models.status import SERVER_TIMESTAMP_FIELD
from geopresence.store.base import ErrorCallback, ValueCallback, safe_dispatch

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class MemoryStatusStore:
    """Dictionary-backed store with synchronous fan-out."""

    def __init__(self, *, clock: Callable[[], int] = _now_ms) -> None:
        self._clock = clock
        self._values: dict[str, dict[str, Any]] = {}
        self._listeners: dict[str, list[tuple[ValueCallback, ErrorCallback]]] = {}
        self.write_failure: Exception | None = None
        """When set, every ``overwrite`` raises :class:`StoreWriteError` built from it."""
        self.write_count = 0

    def get(self, key: str) -> dict[str, Any] | None:
        value = self._values.get(key)
        return copy.deepcopy(value) if value is not None else None

    def listener_count(self, key: str) -> int:
        return len(self._listeners.get(key, []))

    async def overwrite(self, key: str, value: Mapping[str, Any]) -> None:
        failure = self.write_failure
        if failure is not None:
            raise StoreWriteError(f"Write to {key} failed: {failure}", key=key) from failure

        stored = copy.deepcopy(dict(value))
        stored[SERVER_TIMESTAMP_FIELD] = self._clock()
        self._values[key] = stored
        self.write_count += 1
        _logger.debug("Stored %s fields=%s", key, sorted(stored))

        for on_value, _on_error in list(self._listeners.get(key, [])):
            safe_dispatch(on_value, copy.deepcopy(stored), _logger)

    async def subscribe(self, key: str, on_value: ValueCallback, on_error: ErrorCallback) -> None:
        self._listeners.setdefault(key, []).append((on_value, on_error))
        safe_dispatch(on_value, self.get(key), _logger)

    async def unsubscribe(self, key: str) -> None:
        self._listeners.pop(key, None)

    def disconnect(self, message: str) -> None:
        """Tear down every subscription, reporting *message* to each listener."""
        listeners = self._listeners
        self._listeners = {}
        for key, entries in listeners.items():
            for _on_value, on_error in entries:
                safe_dispatch(on_error, StoreSubscribeError(message, key=key), _logger)

    async def close(self) -> None:
        self._listeners.clear()
