"""Realtime store backends.

Every backend implements :class:`~geopresence.store.base.StatusStore`;
the reporter and viewer never talk to each other, only to a store.
"""

from __future__ import annotations

import aiohttp

from geopresence.config import PresenceConfig, StoreBackend
from geopresence.store.base import ErrorCallback, StatusStore, ValueCallback
from geopresence.store.firebase import FirebaseStatusStore
from geopresence.store.memory import MemoryStatusStore
from geopresence.store.mqtt import MqttStatusStore

__all__ = [
    "ErrorCallback",
    "FirebaseStatusStore",
    "MemoryStatusStore",
    "MqttStatusStore",
    "StatusStore",
    "ValueCallback",
    "build_store",
]


def build_store(config: PresenceConfig, http_session: aiohttp.ClientSession | None = None) -> StatusStore:
    """Create the backend selected by ``config.store_backend``."""
    if config.store_backend == StoreBackend.FIREBASE:
        if http_session is None:
            raise ValueError("Firebase store requires an aiohttp session")
        return FirebaseStatusStore(config.firebase, http_session)
    if config.store_backend == StoreBackend.MQTT:
        return MqttStatusStore(config.mqtt)
    return MemoryStatusStore()
