"""Text rendering for reporter and viewer states.

Every state transition produces a :class:`PresenceDisplay`; front ends
(terminal, web page) only copy its fields into their regions for the
verdict, the live subtitle, the detail lines and the store-update status.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum


class ViewKind(StrEnum):
    IDLE = "idle"
    PRESENT = "present"
    ABSENT = "absent"
    NO_RECORD = "no_record"
    ERROR = "error"
    CONNECTION_ERROR = "connection_error"


@dataclass(frozen=True)
class PresenceDisplay:
    kind: ViewKind
    answer: str
    answer_class: str
    subtitle: str
    details: tuple[str, ...] = ()
    store_status: str = ""

    def with_store_status(self, store_status: str) -> PresenceDisplay:
        return replace(self, store_status=store_status)

    def as_text(self) -> str:
        lines = [self.answer, self.subtitle, *self.details]
        if self.store_status:
            lines.append(self.store_status)
        return "\n".join(lines)


STORE_INITIALIZED = "Store initialized"
STORE_UPDATED = "✓ Store updated"
STORE_NO_LOCATION = "⚠ Cannot update store - location unknown"


def store_failed(message: str) -> str:
    return f"✗ Store error: {message}"


# ------------------------------------------------------------------
# Formatting helpers
# ------------------------------------------------------------------


def format_distance_long(distance_meters: float) -> str:
    """``"999 meters"`` below one kilometer, ``"1.5 kilometers"`` above."""
    if distance_meters < 1000:
        return f"{round(distance_meters)} meters"
    return f"{distance_meters / 1000:.1f} kilometers"


def format_distance_short(distance_meters: float | None) -> str:
    """``"999m"`` / ``"1.5km"``; ``"Unknown"`` when absent."""
    if distance_meters is None:
        return "Unknown"
    if distance_meters < 1000:
        return f"{round(distance_meters)}m"
    return f"{distance_meters / 1000:.1f}km"


def format_coordinates(latitude: float | None, longitude: float | None) -> str:
    if latitude is None or longitude is None:
        return "Unknown"
    return f"{latitude:.6f}, {longitude:.6f}"


def format_clock_time(epoch_millis: int) -> str:
    """Local wall-clock time, e.g. ``"3:04:05 PM"``."""
    moment = datetime.fromtimestamp(epoch_millis / 1000)
    return moment.strftime("%I:%M:%S %p").lstrip("0")


def format_absolute(epoch_millis: int) -> str:
    """Local date and time, e.g. ``"1/31/2026 at 3:04:05 PM"``."""
    moment = datetime.fromtimestamp(epoch_millis / 1000)
    return f"{moment.month}/{moment.day}/{moment.year} at {format_clock_time(epoch_millis)}"


def format_relative_time(sampled_at_epoch_millis: int | None, now_ms: int | None = None) -> str:
    """Human readable age of a sample.

    Under one minute is ``"Just now"``, then whole minutes below an hour,
    whole hours below a day, and an absolute local date/time beyond that.
    """
    if not sampled_at_epoch_millis:
        return "Unknown"
    current = now_ms if now_ms is not None else int(time.time() * 1000)
    diff_minutes = math.floor((current - sampled_at_epoch_millis) / 60_000)

    if diff_minutes < 1:
        return "Just now"
    if diff_minutes < 60:
        return f"{diff_minutes} minutes ago"
    if diff_minutes < 1440:
        return f"{diff_minutes // 60} hours ago"
    return format_absolute(sampled_at_epoch_millis)


# ------------------------------------------------------------------
# Reporter states
# ------------------------------------------------------------------


def reporter_idle() -> PresenceDisplay:
    return PresenceDisplay(
        kind=ViewKind.IDLE,
        answer="...",
        answer_class="pending",
        subtitle="Checking location...",
        store_status=STORE_INITIALIZED,
    )


def reporter_result(
    *,
    within: bool,
    distance_meters: float,
    latitude: float,
    longitude: float,
    checked_at_epoch_millis: int,
) -> PresenceDisplay:
    """Render a classified sample; the store status is filled in after the write."""
    return PresenceDisplay(
        kind=ViewKind.PRESENT if within else ViewKind.ABSENT,
        answer="AT OFFICE" if within else "NOT AT OFFICE",
        answer_class="yes" if within else "no",
        subtitle=f"{'You are at the office' if within else 'You are away from office'} - Updating store...",
        details=(
            f"Distance from office: {format_distance_long(distance_meters)}",
            f"Your coordinates: {format_coordinates(latitude, longitude)}",
            f"Last checked: {format_clock_time(checked_at_epoch_millis)}",
        ),
    )


def reporter_location_error(message: str) -> PresenceDisplay:
    return PresenceDisplay(
        kind=ViewKind.ERROR,
        answer="ERROR",
        answer_class="error",
        subtitle="Unable to determine location",
        details=(message,),
        store_status=STORE_NO_LOCATION,
    )


# ------------------------------------------------------------------
# Viewer states
# ------------------------------------------------------------------


def viewer_idle() -> PresenceDisplay:
    return PresenceDisplay(
        kind=ViewKind.IDLE,
        answer="...",
        answer_class="pending",
        subtitle="Connecting...",
    )


def viewer_no_record() -> PresenceDisplay:
    return PresenceDisplay(
        kind=ViewKind.NO_RECORD,
        answer="?",
        answer_class="error",
        subtitle="No data available",
        details=("No status updates found",),
    )


def viewer_status(
    *,
    at_target: bool,
    distance_meters: int | None,
    latitude: float | None,
    longitude: float | None,
    sampled_at_epoch_millis: int | None,
    now_ms: int | None = None,
) -> PresenceDisplay:
    # Presence reads as bad news and absence as good news on the viewer page.
    return PresenceDisplay(
        kind=ViewKind.PRESENT if at_target else ViewKind.ABSENT,
        answer="Yes, :(" if at_target else "No, :)",
        answer_class="yes" if at_target else "no",
        subtitle="User is at the location" if at_target else "User is not at the location",
        details=(
            f"Distance from target: {format_distance_short(distance_meters)}",
            f"Last location: {format_coordinates(latitude, longitude)}",
            f"Last updated: {format_relative_time(sampled_at_epoch_millis, now_ms)}",
        ),
    )


def viewer_processing_error() -> PresenceDisplay:
    return PresenceDisplay(
        kind=ViewKind.ERROR,
        answer="?",
        answer_class="error",
        subtitle="Connection error",
        details=("Error processing status data",),
    )


def viewer_connection_error(message: str) -> PresenceDisplay:
    return PresenceDisplay(
        kind=ViewKind.CONNECTION_ERROR,
        answer="?",
        answer_class="error",
        subtitle="Connection error",
        details=(f"Store connection error: {message}",),
    )
