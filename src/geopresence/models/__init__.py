"""Data models for geopresence."""

from geopresence.models._base import PresenceBaseModel
from geopresence.models.location import LocationErrorKind, LocationFix
from geopresence.models.status import SERVER_TIMESTAMP_FIELD, StatusRecord

__all__ = [
    "LocationErrorKind",
    "LocationFix",
    "PresenceBaseModel",
    "SERVER_TIMESTAMP_FIELD",
    "StatusRecord",
]
