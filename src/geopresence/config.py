"""Runtime configuration for geopresence."""

from __future__ import annotations

import dataclasses
import os
from enum import StrEnum
from typing import Any

from geopresence import _constants as c
from geopresence.exceptions import PresenceConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


class OverlapPolicy(StrEnum):
    """What the reporter does when a tick fires while a cycle is still running."""

    SKIP = "skip"
    ALLOW = "allow"


class StoreBackend(StrEnum):
    MEMORY = "memory"
    FIREBASE = "firebase"
    MQTT = "mqtt"


@dataclasses.dataclass(frozen=True)
class FirebaseSettings:
    """Firebase Realtime Database connection fields.

    ``database_url`` is the ``https://<project>-default-rtdb.firebaseio.com``
    root; ``auth_token`` is an ID token or database secret appended as the
    ``auth`` query parameter.
    """

    database_url: str = ""
    auth_token: str | None = None


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Broker connection fields for the retained-message store."""

    host: str = "localhost"
    port: int = 1883
    topic_prefix: str = c.MQTT_TOPIC_PREFIX
    username: str | None = None
    password: str | None = None
    client_id: str | None = None
    keepalive: int = 60
    tls: bool = False


@dataclasses.dataclass(frozen=True)
class PresenceConfig:
    """Reporter / viewer configuration.

    Parameters
    ----------
    target_latitude : float
        Reference point latitude in degrees.
    target_longitude : float
        Reference point longitude in degrees.
    allowed_radius_meters : float
        A sample at or below this distance counts as "at target".
    report_interval : float
        Seconds between reporter cycles.
    location_timeout : float
        Seconds to wait for a location fix before the cycle fails.
    location_maximum_age : float
        A cached fix younger than this (seconds) may be reused.
    high_accuracy : bool
        Hint passed to the location provider.
    overlap_policy : OverlapPolicy
        Skip ticks while a cycle is in flight, or allow overlapping cycles.
    status_key : str
        Store key holding the status record.
    store_backend : StoreBackend
        Which store implementation the CLI builds.
    location_url : str or None
        JSON endpoint polled by :class:`~geopresence.location.HttpLocationProvider`.
    firebase : FirebaseSettings
        Realtime Database settings.
    mqtt : MqttSettings
        Broker settings.
    """

    target_latitude: float = c.TARGET_LATITUDE
    target_longitude: float = c.TARGET_LONGITUDE
    allowed_radius_meters: float = c.ALLOWED_RADIUS_METERS
    report_interval: float = c.REPORT_INTERVAL
    location_timeout: float = c.LOCATION_TIMEOUT
    location_maximum_age: float = c.LOCATION_MAXIMUM_AGE
    high_accuracy: bool = True
    overlap_policy: OverlapPolicy = OverlapPolicy.SKIP
    status_key: str = c.STATUS_KEY
    store_backend: StoreBackend = StoreBackend.MEMORY
    location_url: str | None = None
    firebase: FirebaseSettings = dataclasses.field(default_factory=FirebaseSettings)
    mqtt: MqttSettings = dataclasses.field(default_factory=MqttSettings)

    def __post_init__(self) -> None:
        if not -90.0 <= self.target_latitude <= 90.0:
            raise PresenceConfigError(f"target_latitude out of range: {self.target_latitude}")
        if not -180.0 <= self.target_longitude <= 180.0:
            raise PresenceConfigError(f"target_longitude out of range: {self.target_longitude}")
        if self.allowed_radius_meters < 0:
            raise PresenceConfigError("allowed_radius_meters cannot be negative")
        if self.report_interval <= 0 or self.location_timeout <= 0:
            raise PresenceConfigError("report_interval and location_timeout must be positive")
        if self.location_maximum_age < 0:
            raise PresenceConfigError("location_maximum_age cannot be negative")
        if not self.status_key.strip() or any(ch in self.status_key for ch in ".#$[]"):
            raise PresenceConfigError(f"invalid status_key: {self.status_key!r}")

    @classmethod
    def from_env(cls, **overrides: Any) -> PresenceConfig:
        """Create configuration from ``GEOPRESENCE_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        PresenceConfig
            Populated configuration.

        Raises
        ------
        PresenceConfigError
            If a variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_FLOAT_MAP = {
            "GEOPRESENCE_TARGET_LATITUDE": "target_latitude",
            "GEOPRESENCE_TARGET_LONGITUDE": "target_longitude",
            "GEOPRESENCE_RADIUS_METERS": "allowed_radius_meters",
            "GEOPRESENCE_REPORT_INTERVAL": "report_interval",
            "GEOPRESENCE_LOCATION_TIMEOUT": "location_timeout",
            "GEOPRESENCE_LOCATION_MAXIMUM_AGE": "location_maximum_age",
        }
        config_kwargs: dict[str, Any] = {}
        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)

            if "high_accuracy" not in overrides:
                config_kwargs["high_accuracy"] = _env_bool(env.get("GEOPRESENCE_HIGH_ACCURACY"), True)

            policy = env.get("GEOPRESENCE_OVERLAP_POLICY")
            if policy is not None and "overlap_policy" not in overrides:
                config_kwargs["overlap_policy"] = OverlapPolicy(policy.strip().lower())

            backend = env.get("GEOPRESENCE_STORE")
            if backend is not None and "store_backend" not in overrides:
                config_kwargs["store_backend"] = StoreBackend(backend.strip().lower())

            for env_key, field_name in (
                ("GEOPRESENCE_STATUS_KEY", "status_key"),
                ("GEOPRESENCE_LOCATION_URL", "location_url"),
            ):
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = val

            firebase_overrides = overrides.pop("firebase", None)
            if isinstance(firebase_overrides, FirebaseSettings):
                config_kwargs["firebase"] = firebase_overrides
            else:
                firebase_kwargs: dict[str, Any] = {}
                for env_key, field_name in (
                    ("GEOPRESENCE_FIREBASE_URL", "database_url"),
                    ("GEOPRESENCE_FIREBASE_AUTH", "auth_token"),
                ):
                    val = env.get(env_key)
                    if val is not None:
                        firebase_kwargs[field_name] = val
                if isinstance(firebase_overrides, dict):
                    firebase_kwargs.update(firebase_overrides)
                config_kwargs["firebase"] = FirebaseSettings(**firebase_kwargs)

            mqtt_overrides = overrides.pop("mqtt", None)
            if isinstance(mqtt_overrides, MqttSettings):
                config_kwargs["mqtt"] = mqtt_overrides
            else:
                mqtt_kwargs: dict[str, Any] = {}
                for env_key, field_name in (
                    ("GEOPRESENCE_MQTT_HOST", "host"),
                    ("GEOPRESENCE_MQTT_TOPIC_PREFIX", "topic_prefix"),
                    ("GEOPRESENCE_MQTT_USERNAME", "username"),
                    ("GEOPRESENCE_MQTT_PASSWORD", "password"),
                    ("GEOPRESENCE_MQTT_CLIENT_ID", "client_id"),
                ):
                    val = env.get(env_key)
                    if val is not None:
                        mqtt_kwargs[field_name] = val
                for env_key, field_name in (
                    ("GEOPRESENCE_MQTT_PORT", "port"),
                    ("GEOPRESENCE_MQTT_KEEPALIVE", "keepalive"),
                ):
                    val = env.get(env_key)
                    if val is not None:
                        mqtt_kwargs[field_name] = int(val)
                tls_env = env.get("GEOPRESENCE_MQTT_TLS")
                if tls_env is not None:
                    mqtt_kwargs["tls"] = _env_bool(tls_env, False)
                if isinstance(mqtt_overrides, dict):
                    mqtt_kwargs.update(mqtt_overrides)
                config_kwargs["mqtt"] = MqttSettings(**mqtt_kwargs)
        except ValueError as exc:
            raise PresenceConfigError(f"Invalid environment configuration: {exc}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
