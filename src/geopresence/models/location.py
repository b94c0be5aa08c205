"""Location fix model and failure kinds."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from geopresence.models._base import normalize_epoch_millis, safe_float


class LocationErrorKind(StrEnum):
    UNSUPPORTED = "unsupported"
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @property
    def message(self) -> str:
        return _ERROR_MESSAGES[self]


_ERROR_MESSAGES: dict[LocationErrorKind, str] = {
    LocationErrorKind.UNSUPPORTED: "Your device does not support location services",
    LocationErrorKind.PERMISSION_DENIED: "Please enable location access and restart the reporter",
    LocationErrorKind.POSITION_UNAVAILABLE: "Location information is unavailable",
    LocationErrorKind.TIMEOUT: "Location request timed out",
    LocationErrorKind.UNKNOWN: "An unknown error occurred",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocationFix(BaseModel):
    """A single position sample.

    Parameters
    ----------
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    accuracy_meters : float or None
        Reported horizontal accuracy, when the source provides one.
    captured_at_epoch_millis : int
        Client-side capture time.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    latitude: float = Field(validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(validation_alias=AliasChoices("longitude", "lng", "lon"))
    accuracy_meters: float | None = Field(
        default=None,
        validation_alias=AliasChoices("accuracy_meters", "accuracy", "acc"),
    )
    captured_at_epoch_millis: int = Field(
        default_factory=_now_ms,
        validation_alias=AliasChoices("captured_at_epoch_millis", "timestamp", "time"),
    )

    @model_validator(mode="before")
    @classmethod
    def _merge_nested_coords(cls, values: Any) -> Any:
        # Relays commonly wrap the position in a "coords" object.
        if not isinstance(values, dict):
            return values
        nested = values.get("coords")
        if not isinstance(nested, dict):
            return values
        merged = dict(values)
        merged.update(nested)
        return merged

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("accuracy_meters", mode="before")
    @classmethod
    def _coerce_accuracy(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("captured_at_epoch_millis", mode="before")
    @classmethod
    def _coerce_captured_at(cls, value: Any) -> int:
        parsed = normalize_epoch_millis(value)
        return parsed if parsed is not None else _now_ms()

    def age_millis(self, now_ms: int | None = None) -> int:
        """Milliseconds elapsed since the fix was captured."""
        current = now_ms if now_ms is not None else _now_ms()
        return current - self.captured_at_epoch_millis
