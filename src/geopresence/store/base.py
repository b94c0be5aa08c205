"""Store interface shared by all realtime backends."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from geopresence.exceptions import StoreSubscribeError

ValueCallback = Callable[[Any], None]
"""Receives the full current value of a key (``None`` when nothing is stored)."""

ErrorCallback = Callable[[StoreSubscribeError], None]


class StatusStore(Protocol):
    """Opaque key-value store with atomic overwrite and push subscriptions.

    Values are flat mappings of named scalar fields. ``overwrite`` replaces
    the whole value; the backend stamps its own server time into
    ``serverTimestamp``. ``subscribe`` delivers the current value as soon as
    the listener is attached and again after every overwrite.
    """

    async def overwrite(self, key: str, value: Mapping[str, Any]) -> None:
        ...

    async def subscribe(self, key: str, on_value: ValueCallback, on_error: ErrorCallback) -> None:
        ...

    async def unsubscribe(self, key: str) -> None:
        ...

    async def close(self) -> None:
        ...


def safe_dispatch(callback: Callable[[Any], None], value: Any, logger: logging.Logger) -> None:
    """Invoke a listener callback; a failing listener never breaks the store."""
    try:
        callback(value)
    except Exception:
        logger.warning("Store listener callback failed", exc_info=True)
