"""Live view of the status record, driven by store pushes."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from geopresence import display as _display
from geopresence._constants import STATUS_KEY
from geopresence.display import PresenceDisplay
from geopresence.exceptions import StoreError, StoreSubscribeError
from geopresence.models.status import StatusRecord
from geopresence.store.base import StatusStore

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class Viewer:
    """Subscribes to one status key and renders every delivered value.

    There is no polling: the store pushes the current value on attach and
    after each overwrite. Subscription errors are rendered, not retried.
    """

    def __init__(
        self,
        store: StatusStore,
        *,
        key: str = STATUS_KEY,
        on_display: Callable[[PresenceDisplay], None] | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._key = key
        self._on_display = on_display
        self._clock = clock
        self._attached = False

        self.display: PresenceDisplay = _display.viewer_idle()
        self.record: StatusRecord | None = None
        self.last_error: str | None = None
        self.updates_received = 0

    @property
    def is_attached(self) -> bool:
        return self._attached

    async def start(self) -> None:
        """Attach the subscription; no-op when already attached."""
        if self._attached:
            return
        _logger.info("Viewer subscribing to %s", self._key)
        self._attached = True
        try:
            await self._store.subscribe(self._key, self._on_value, self._on_error)
        except StoreError as exc:
            self._attached = False
            self._on_error(StoreSubscribeError(str(exc), key=self._key))

    async def stop(self) -> None:
        """Detach the subscription so no listener is left behind."""
        if not self._attached:
            return
        self._attached = False
        await self._store.unsubscribe(self._key)
        _logger.info("Viewer detached from %s", self._key)

    async def __aenter__(self) -> Viewer:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def refresh(self) -> PresenceDisplay:
        """Re-render the last record so its relative time label stays current."""
        if self.display.kind in (_display.ViewKind.PRESENT, _display.ViewKind.ABSENT) and self.record is not None:
            self._emit(self._render(self.record))
        return self.display

    def _render(self, record: StatusRecord) -> PresenceDisplay:
        return _display.viewer_status(
            at_target=record.at_target,
            distance_meters=record.distance_meters,
            latitude=record.latitude,
            longitude=record.longitude,
            sampled_at_epoch_millis=record.sampled_at_epoch_millis,
            now_ms=self._clock(),
        )

    def _on_value(self, value: Any) -> None:
        self.updates_received += 1
        _logger.debug("Status received for %s: %s", self._key, value)
        try:
            record = StatusRecord.from_store(value)
        except ValueError:
            _logger.warning("Error processing status data", exc_info=True)
            self._emit(_display.viewer_processing_error())
            return

        self.record = record
        self.last_error = None
        if record is None:
            self._emit(_display.viewer_no_record())
            return
        self._emit(self._render(record))

    def _on_error(self, error: StoreSubscribeError) -> None:
        _logger.error("Store subscription error for %s: %s", self._key, error)
        self.last_error = str(error)
        self._emit(_display.viewer_connection_error(str(error)))

    def _emit(self, display: PresenceDisplay) -> None:
        self.display = display
        if self._on_display is None:
            return
        try:
            self._on_display(display)
        except Exception:
            _logger.debug("on_display callback failed", exc_info=True)
