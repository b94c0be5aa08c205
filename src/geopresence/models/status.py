"""Presence status record shared between reporter and viewer."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import Field, field_validator

from geopresence.models._base import PresenceBaseModel, normalize_epoch_millis, safe_float, safe_int

#: Placeholder the store replaces with its own clock on write.
SERVER_TIMESTAMP_FIELD = "serverTimestamp"


class StatusRecord(PresenceBaseModel):
    """The single record exchanged through the store.

    A record is always written whole; there is no partial update and no
    history. ``server_timestamp`` is opaque and assigned by the store.

    Parameters
    ----------
    at_target : bool
        Whether the last sample was within the allowed radius.
    latitude : float or None
        Last sampled latitude.
    longitude : float or None
        Last sampled longitude.
    distance_meters : int or None
        Rounded distance from the reference point at sample time.
    sampled_at_epoch_millis : int or None
        Client-side capture time.
    server_timestamp : Any
        Backend-assigned write time (``None`` until the store sets it).
    """

    at_target: bool = False
    latitude: float | None = None
    longitude: float | None = None
    distance_meters: int | None = None
    sampled_at_epoch_millis: int | None = None
    server_timestamp: Any = Field(default=None)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("distance_meters", mode="before")
    @classmethod
    def _coerce_distance(cls, value: Any) -> int | None:
        parsed = safe_float(value)
        return None if parsed is None else safe_int(round(parsed))

    @field_validator("sampled_at_epoch_millis", mode="before")
    @classmethod
    def _coerce_sampled_at(cls, value: Any) -> int | None:
        return normalize_epoch_millis(value)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_store_payload(self) -> dict[str, Any]:
        """Flat camelCase mapping written to the store.

        ``serverTimestamp`` is left out; each backend fills in its own
        server-side value.
        """
        return self.model_dump(by_alias=True, exclude={"server_timestamp"})

    @classmethod
    def from_store(cls, value: Any) -> StatusRecord | None:
        """Parse a delivered store value. ``None`` means no record exists yet."""
        if value is None:
            return None
        if not isinstance(value, Mapping):
            raise ValueError(f"status record must be a mapping, got {type(value).__name__}")
        if not value:
            return None
        return cls.model_validate(dict(value))
