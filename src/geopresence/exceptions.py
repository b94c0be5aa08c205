"""Custom exception hierarchy for geopresence."""

from __future__ import annotations

from geopresence.models.location import LocationErrorKind


class PresenceError(Exception):
    """Base exception for all geopresence errors."""


class PresenceConfigError(PresenceError):
    """Invalid or missing configuration."""


class LocationError(PresenceError):
    """A location sample could not be obtained.

    Every subclass carries a :class:`LocationErrorKind` so the reporter can
    render a kind-specific message without inspecting the exception type.
    """

    kind: LocationErrorKind = LocationErrorKind.UNKNOWN

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.kind.message)

    @property
    def user_message(self) -> str:
        """Message shown to the user for this failure kind."""
        return self.kind.message


class LocationUnsupportedError(LocationError):
    """No location source is available on this device."""

    kind = LocationErrorKind.UNSUPPORTED


class LocationPermissionDeniedError(LocationError):
    """The location source refused access."""

    kind = LocationErrorKind.PERMISSION_DENIED


class LocationUnavailableError(LocationError):
    """The location source answered but had no usable position."""

    kind = LocationErrorKind.POSITION_UNAVAILABLE


class LocationTimeoutError(LocationError):
    """No fix arrived within the configured timeout."""

    kind = LocationErrorKind.TIMEOUT


class LocationUnknownError(LocationError):
    """Any other location failure."""

    kind = LocationErrorKind.UNKNOWN


class StoreError(PresenceError):
    """Realtime store failure (network, auth, broker)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class StoreWriteError(StoreError):
    """Overwriting the status record failed."""


class StoreSubscribeError(StoreError):
    """The subscription could not be opened or was torn down by the store."""
