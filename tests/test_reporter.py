from __future__ import annotations

import asyncio
import math

import pytest

from geopresence import display
from geopresence._constants import EARTH_RADIUS_METERS, STATUS_KEY, TARGET_LATITUDE, TARGET_LONGITUDE
from geopresence.config import OverlapPolicy, PresenceConfig
from geopresence.display import PresenceDisplay, ViewKind
from geopresence.exceptions import LocationPermissionDeniedError
from geopresence.location import LocationRequest
from geopresence.models.location import LocationErrorKind, LocationFix
from geopresence.reporter import Reporter, StoreWriteStatus
from geopresence.store.memory import MemoryStatusStore

NOW_MS = 1_767_225_600_000


def _north_of_target(meters: float) -> LocationFix:
    return LocationFix(
        latitude=TARGET_LATITUDE + math.degrees(meters / EARTH_RADIUS_METERS),
        longitude=TARGET_LONGITUDE,
    )


def _config(**kwargs: object) -> PresenceConfig:
    kwargs.setdefault("location_maximum_age", 0.0)
    return PresenceConfig(**kwargs)  # type: ignore[arg-type]


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class _FixedProvider:
    def __init__(self, fix: LocationFix) -> None:
        self.fix = fix
        self.calls = 0

    async def get_fix(self, request: LocationRequest) -> LocationFix:
        self.calls += 1
        return self.fix


class _GatedProvider:
    """Blocks each call until the matching gate is opened."""

    def __init__(self, fix: LocationFix) -> None:
        self.fix = fix
        self.gates: list[asyncio.Event] = []

    async def get_fix(self, request: LocationRequest) -> LocationFix:
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return self.fix


class _RaisingProvider:
    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def get_fix(self, request: LocationRequest) -> LocationFix:
        raise self._exc


@pytest.mark.asyncio
async def test_sample_outside_radius_writes_not_at_target() -> None:
    store = MemoryStatusStore()
    reporter = Reporter(_config(), store, _FixedProvider(_north_of_target(200)), clock=lambda: NOW_MS)

    result = await reporter.report_once()

    assert result.store_status == StoreWriteStatus.UPDATED
    stored = store.get(STATUS_KEY)
    assert stored is not None
    assert stored["atTarget"] is False
    assert stored["distanceMeters"] == 200
    assert stored["sampledAtEpochMillis"] == NOW_MS
    assert stored["latitude"] == pytest.approx(TARGET_LATITUDE + math.degrees(200 / EARTH_RADIUS_METERS))
    assert "serverTimestamp" in stored
    assert reporter.display.answer == "NOT AT OFFICE"
    assert reporter.display.store_status == display.STORE_UPDATED


@pytest.mark.asyncio
async def test_sample_inside_radius_writes_at_target() -> None:
    store = MemoryStatusStore()
    reporter = Reporter(_config(), store, _FixedProvider(_north_of_target(50)))

    result = await reporter.report_once()

    assert result.classification is not None
    assert result.classification.within
    assert store.get(STATUS_KEY)["atTarget"] is True  # type: ignore[index]
    assert reporter.display.answer == "AT OFFICE"
    assert reporter.display.subtitle == "You are at the office - Updating store..."


@pytest.mark.asyncio
async def test_write_failure_keeps_classification_and_next_cycle_recovers() -> None:
    store = MemoryStatusStore()
    store.write_failure = ConnectionError("offline")
    reporter = Reporter(_config(), store, _FixedProvider(_north_of_target(10)))

    failed = await reporter.report_once()

    assert failed.store_status == StoreWriteStatus.FAILED
    assert failed.located
    assert failed.display.answer == "AT OFFICE"
    assert failed.display.store_status == f"✗ Store error: Write to {STATUS_KEY} failed: offline"
    assert store.get(STATUS_KEY) is None

    store.write_failure = None
    recovered = await reporter.report_once()

    assert recovered.store_status == StoreWriteStatus.UPDATED
    assert store.write_count == 1


@pytest.mark.asyncio
async def test_location_failure_skips_write() -> None:
    store = MemoryStatusStore()
    await store.overwrite(STATUS_KEY, {"atTarget": True})
    reporter = Reporter(_config(), store, _RaisingProvider(LocationPermissionDeniedError()))

    result = await reporter.report_once()

    assert result.store_status == StoreWriteStatus.SKIPPED_NO_LOCATION
    assert result.location_error == LocationErrorKind.PERMISSION_DENIED
    assert store.write_count == 1
    assert reporter.display.kind == ViewKind.ERROR
    assert reporter.display.details == ("Please enable location access and restart the reporter",)
    assert reporter.display.store_status == display.STORE_NO_LOCATION


@pytest.mark.asyncio
async def test_missing_provider_is_unsupported() -> None:
    reporter = Reporter(_config(), MemoryStatusStore(), None)

    result = await reporter.report_once()

    assert result.location_error == LocationErrorKind.UNSUPPORTED
    assert reporter.display.details == ("Your device does not support location services",)


@pytest.mark.asyncio
async def test_slow_provider_times_out() -> None:
    reporter = Reporter(_config(location_timeout=0.01), MemoryStatusStore(), _GatedProvider(_north_of_target(0)))

    result = await reporter.report_once()

    assert result.location_error == LocationErrorKind.TIMEOUT
    assert reporter.display.details == ("Location request timed out",)


@pytest.mark.asyncio
async def test_start_runs_first_cycle_immediately_and_repeats() -> None:
    store = MemoryStatusStore()
    provider = _FixedProvider(_north_of_target(0))
    shown: list[PresenceDisplay] = []
    reporter = Reporter(_config(report_interval=0.02), store, provider, on_display=shown.append)

    await reporter.start()
    await asyncio.sleep(0.01)
    assert store.write_count == 1
    await asyncio.sleep(0.06)
    await reporter.stop()

    assert store.write_count >= 2
    assert shown[0].answer == "..."
    assert shown[0].store_status == display.STORE_INITIALIZED
    assert not reporter.is_running


@pytest.mark.asyncio
async def test_loop_continues_after_failures() -> None:
    store = MemoryStatusStore()
    store.write_failure = ConnectionError("offline")
    reporter = Reporter(_config(report_interval=0.01), store, _FixedProvider(_north_of_target(0)))

    async with reporter:
        await asyncio.sleep(0.05)

    assert reporter.cycles_started >= 2
    assert reporter.last_result is not None
    assert reporter.last_result.store_status == StoreWriteStatus.FAILED


@pytest.mark.asyncio
async def test_skip_policy_drops_ticks_while_cycle_in_flight() -> None:
    store = MemoryStatusStore()
    provider = _GatedProvider(_north_of_target(0))
    reporter = Reporter(_config(report_interval=0.01), store, provider)

    await reporter.start()
    await asyncio.sleep(0.05)

    assert reporter.cycles_started == 1
    assert reporter.inflight == 1
    assert reporter.ticks_skipped >= 2

    provider.gates[0].set()
    await asyncio.sleep(0.005)
    await reporter.stop()

    assert store.write_count == 1


@pytest.mark.asyncio
async def test_allow_policy_overlaps_cycles() -> None:
    provider = _GatedProvider(_north_of_target(0))
    reporter = Reporter(
        _config(report_interval=0.01, overlap_policy=OverlapPolicy.ALLOW),
        MemoryStatusStore(),
        provider,
    )

    await reporter.start()
    await asyncio.sleep(0.05)

    assert reporter.cycles_started >= 2
    assert reporter.inflight == reporter.cycles_started
    assert reporter.ticks_skipped == 0
    await reporter.stop()
    assert reporter.inflight == 0


@pytest.mark.asyncio
async def test_late_cycle_does_not_overwrite_newer_one() -> None:
    store = MemoryStatusStore()
    provider = _GatedProvider(_north_of_target(500))
    reporter = Reporter(_config(overlap_policy=OverlapPolicy.ALLOW), store, provider)

    older = asyncio.create_task(reporter.report_once())
    await _settle()
    newer = asyncio.create_task(reporter.report_once())
    await _settle()

    provider.gates[1].set()
    newer_result = await newer
    provider.gates[0].set()
    older_result = await older

    assert newer_result.store_status == StoreWriteStatus.UPDATED
    assert older_result.store_status == StoreWriteStatus.DISCARDED_STALE
    assert store.write_count == 1
    assert reporter.last_result is newer_result


@pytest.mark.asyncio
async def test_stop_cancels_inflight_cycle() -> None:
    store = MemoryStatusStore()
    reporter = Reporter(_config(), store, _GatedProvider(_north_of_target(0)))

    await reporter.start()
    await _settle()
    assert reporter.inflight == 1

    await reporter.stop()

    assert reporter.inflight == 0
    assert not reporter.is_running
    assert store.write_count == 0


@pytest.mark.asyncio
async def test_display_callback_failure_does_not_break_cycle() -> None:
    def broken(_display: PresenceDisplay) -> None:
        raise RuntimeError("terminal closed")

    store = MemoryStatusStore()
    reporter = Reporter(_config(), store, _FixedProvider(_north_of_target(0)), on_display=broken)

    result = await reporter.report_once()

    assert result.store_status == StoreWriteStatus.UPDATED
    assert store.write_count == 1
