"""geopresence - report and watch whether a device is near a fixed location."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("geopresence")
except PackageNotFoundError:
    __version__ = "0+local"
from geopresence.config import FirebaseSettings, MqttSettings, OverlapPolicy, PresenceConfig, StoreBackend
from geopresence.display import PresenceDisplay, ViewKind
from geopresence.exceptions import (
    LocationError,
    LocationPermissionDeniedError,
    LocationTimeoutError,
    LocationUnavailableError,
    LocationUnknownError,
    LocationUnsupportedError,
    PresenceConfigError,
    PresenceError,
    StoreError,
    StoreSubscribeError,
    StoreWriteError,
)
from geopresence.geo import classify, haversine_meters, is_within
from geopresence.location import HttpLocationProvider, LocationRequest, LocationSampler, StaticLocationProvider
from geopresence.models import LocationErrorKind, LocationFix, StatusRecord
from geopresence.reporter import CycleResult, Reporter, StoreWriteStatus
from geopresence.store import FirebaseStatusStore, MemoryStatusStore, MqttStatusStore, StatusStore, build_store
from geopresence.viewer import Viewer

__all__ = [
    "__version__",
    "CycleResult",
    "FirebaseSettings",
    "FirebaseStatusStore",
    "HttpLocationProvider",
    "LocationError",
    "LocationErrorKind",
    "LocationFix",
    "LocationPermissionDeniedError",
    "LocationRequest",
    "LocationSampler",
    "LocationTimeoutError",
    "LocationUnavailableError",
    "LocationUnknownError",
    "LocationUnsupportedError",
    "MemoryStatusStore",
    "MqttSettings",
    "MqttStatusStore",
    "OverlapPolicy",
    "PresenceConfig",
    "PresenceConfigError",
    "PresenceDisplay",
    "PresenceError",
    "Reporter",
    "StaticLocationProvider",
    "StatusRecord",
    "StatusStore",
    "StoreBackend",
    "StoreError",
    "StoreSubscribeError",
    "StoreWriteError",
    "StoreWriteStatus",
    "Viewer",
    "ViewKind",
    "build_store",
    "classify",
    "haversine_meters",
    "is_within",
]
