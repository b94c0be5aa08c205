"""Periodic location sampling and status publishing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from geopresence import display as _display
from geopresence.config import OverlapPolicy, PresenceConfig
from geopresence.display import PresenceDisplay
from geopresence.exceptions import LocationError, StoreError
from geopresence.geo import Classification, GeoPoint, classify
from geopresence.location import LocationProvider, LocationRequest, LocationSampler
from geopresence.models.location import LocationErrorKind, LocationFix
from geopresence.models.status import StatusRecord
from geopresence.store.base import StatusStore

_logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class StoreWriteStatus(StrEnum):
    UPDATED = "updated"
    FAILED = "failed"
    SKIPPED_NO_LOCATION = "skipped_no_location"
    DISCARDED_STALE = "discarded_stale"


@dataclass(frozen=True)
class CycleResult:
    """Everything one reporting cycle produced.

    The location outcome and the store outcome are kept apart so that a
    failed write never hides a successful classification.
    """

    sequence: int
    store_status: StoreWriteStatus
    display: PresenceDisplay
    fix: LocationFix | None = None
    classification: Classification | None = None
    record: StatusRecord | None = None
    location_error: LocationErrorKind | None = None
    store_error: str | None = None

    @property
    def located(self) -> bool:
        return self.fix is not None


class Reporter:
    """Samples the device position on a fixed interval and overwrites the status record.

    Usage::

        reporter = Reporter(config, store, provider)
        await reporter.start()
        ...
        await reporter.stop()

    The first cycle runs as soon as :meth:`start` is called; later cycles
    follow every ``config.report_interval`` seconds regardless of how the
    previous one ended. With :attr:`OverlapPolicy.SKIP` a tick that fires
    while a cycle is still in flight is dropped; with
    :attr:`OverlapPolicy.ALLOW` cycles overlap and a cycle that reaches the
    store after a newer one has started writing is discarded.
    """

    def __init__(
        self,
        config: PresenceConfig,
        store: StatusStore,
        provider: LocationProvider | None,
        *,
        on_display: Callable[[PresenceDisplay], None] | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._store = store
        self._sampler = LocationSampler(provider)
        self._request = LocationRequest(
            high_accuracy=config.high_accuracy,
            timeout=config.location_timeout,
            maximum_age=config.location_maximum_age,
        )
        self._target = GeoPoint(config.target_latitude, config.target_longitude)
        self._on_display = on_display
        self._clock = clock

        self._timer_task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[CycleResult]] = set()
        self._sequence = 0
        self._newest_write_sequence = 0

        self.display: PresenceDisplay = _display.reporter_idle()
        self.last_result: CycleResult | None = None
        self.cycles_started = 0
        self.ticks_skipped = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def start(self) -> None:
        """Run one cycle now and schedule the rest; no-op when already running."""
        if self.is_running:
            return
        _logger.info(
            "Reporter started target=(%s, %s) radius=%sm interval=%ss policy=%s",
            self._target.latitude,
            self._target.longitude,
            self._config.allowed_radius_meters,
            self._config.report_interval,
            self._config.overlap_policy.value,
        )
        self._emit(self.display)
        self._timer_task = asyncio.create_task(self._run(), name="geopresence-reporter")

    async def stop(self) -> None:
        """Cancel the timer and any cycle still in flight."""
        timer = self._timer_task
        self._timer_task = None
        if timer is not None:
            timer.cancel()
        pending = list(self._inflight)
        for task in pending:
            task.cancel()
        await asyncio.gather(*([timer] if timer is not None else []), *pending, return_exceptions=True)
        self._inflight.clear()
        _logger.info("Reporter stopped")

    async def __aenter__(self) -> Reporter:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            self._tick()
            next_tick += self._config.report_interval
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    def _tick(self) -> None:
        if self._inflight and self._config.overlap_policy == OverlapPolicy.SKIP:
            self.ticks_skipped += 1
            _logger.info("Previous cycle still running; skipping this tick")
            return
        task = asyncio.create_task(self.report_once(), name=f"geopresence-cycle-{self._sequence + 1}")
        self._inflight.add(task)
        task.add_done_callback(self._cycle_done)

    def _cycle_done(self, task: asyncio.Task[CycleResult]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Reporter cycle crashed", exc_info=exc)

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def report_once(self) -> CycleResult:
        """Sample, classify and publish once.

        Location failures skip the write; store failures are reported
        in the result. Neither raises.
        """
        self._sequence += 1
        sequence = self._sequence
        self.cycles_started += 1

        try:
            fix = await self._sampler.sample(self._request)
        except LocationError as exc:
            _logger.warning("Location sample failed kind=%s: %s", exc.kind.value, exc)
            result = CycleResult(
                sequence=sequence,
                store_status=StoreWriteStatus.SKIPPED_NO_LOCATION,
                display=_display.reporter_location_error(exc.user_message),
                location_error=exc.kind,
            )
            self._finish(result)
            return result

        classification = classify(fix, self._target, self._config.allowed_radius_meters)
        checked_at = self._clock()
        record = StatusRecord(
            at_target=classification.within,
            latitude=fix.latitude,
            longitude=fix.longitude,
            distance_meters=classification.rounded_distance,
            sampled_at_epoch_millis=checked_at,
        )
        located = _display.reporter_result(
            within=classification.within,
            distance_meters=classification.distance_meters,
            latitude=fix.latitude,
            longitude=fix.longitude,
            checked_at_epoch_millis=checked_at,
        )
        _logger.debug(
            "Cycle %s classified distance=%.1fm within=%s",
            sequence,
            classification.distance_meters,
            classification.within,
        )

        if sequence < self._newest_write_sequence:
            _logger.info(
                "Cycle %s finished after cycle %s started writing; discarding",
                sequence,
                self._newest_write_sequence,
            )
            return CycleResult(
                sequence=sequence,
                store_status=StoreWriteStatus.DISCARDED_STALE,
                display=located,
                fix=fix,
                classification=classification,
                record=record,
            )

        self._emit(located)
        self._newest_write_sequence = sequence
        store_error: str | None = None
        try:
            await self._store.overwrite(self._config.status_key, record.to_store_payload())
        except StoreError as exc:
            store_error = str(exc)
            _logger.warning("Store update failed: %s", exc)
        except Exception as exc:
            store_error = str(exc) or type(exc).__name__
            _logger.warning("Store update failed unexpectedly", exc_info=True)

        if store_error is None:
            status = StoreWriteStatus.UPDATED
            final = located.with_store_status(_display.STORE_UPDATED)
        else:
            status = StoreWriteStatus.FAILED
            final = located.with_store_status(_display.store_failed(store_error))

        result = CycleResult(
            sequence=sequence,
            store_status=status,
            display=final,
            fix=fix,
            classification=classification,
            record=record,
            store_error=store_error,
        )
        self._finish(result)
        return result

    def _finish(self, result: CycleResult) -> None:
        self.last_result = result
        self._emit(result.display)

    def _emit(self, display: PresenceDisplay) -> None:
        self.display = display
        if self._on_display is None:
            return
        try:
            self._on_display(display)
        except Exception:
            _logger.debug("on_display callback failed", exc_info=True)
