"""Location providers and the sampling wrapper used by the reporter."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from geopresence._constants import USER_AGENT
from geopresence._redact import redact_url
from geopresence.exceptions import (
    LocationError,
    LocationPermissionDeniedError,
    LocationTimeoutError,
    LocationUnavailableError,
    LocationUnknownError,
    LocationUnsupportedError,
)
from geopresence.models.location import LocationFix

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationRequest:
    """Options for a single location request.

    ``timeout`` and ``maximum_age`` are in seconds.
    """

    high_accuracy: bool = True
    timeout: float = 15.0
    maximum_age: float = 30.0


class LocationProvider(Protocol):
    """Structural interface for anything that can produce a position."""

    async def get_fix(self, request: LocationRequest) -> LocationFix:
        ...


class StaticLocationProvider:
    """Provider that always reports the same coordinates."""

    def __init__(self, latitude: float, longitude: float, *, accuracy_meters: float | None = None) -> None:
        self._latitude = latitude
        self._longitude = longitude
        self._accuracy = accuracy_meters

    async def get_fix(self, request: LocationRequest) -> LocationFix:
        return LocationFix(
            latitude=self._latitude,
            longitude=self._longitude,
            accuracy_meters=self._accuracy,
        )


class HttpLocationProvider:
    """Fetch the device position from a JSON endpoint.

    The endpoint is typically a phone GPS relay answering with
    ``{"lat": ..., "lng": ..., "accuracy": ..., "timestamp": ...}``
    (a nested ``coords`` object is also accepted).
    """

    def __init__(self, url: str, http_session: aiohttp.ClientSession) -> None:
        self._url = url
        self._http = http_session

    async def get_fix(self, request: LocationRequest) -> LocationFix:
        params = {"highAccuracy": "true" if request.high_accuracy else "false"}
        headers = {"accept": "application/json", "user-agent": USER_AGENT}
        _logger.debug("GET %s", redact_url(self._url))

        try:
            async with self._http.get(self._url, params=params, headers=headers) as resp:
                if resp.status in (401, 403):
                    raise LocationPermissionDeniedError(f"Location source refused access (HTTP {resp.status})")
                if resp.status in (404, 503):
                    raise LocationUnavailableError(f"Location source has no position (HTTP {resp.status})")
                if resp.status != 200:
                    raise LocationUnknownError(f"HTTP {resp.status} from location source")
                payload: Any = await resp.json(content_type=None)
        except LocationError:
            raise
        except aiohttp.ClientError as exc:
            raise LocationUnknownError(f"Location request failed: {exc}") from exc
        except ValueError as exc:
            raise LocationUnavailableError(f"Invalid JSON from location source: {exc}") from exc

        if not isinstance(payload, dict):
            raise LocationUnavailableError("Location source returned a non-object payload")
        try:
            return LocationFix.model_validate(payload)
        except ValidationError as exc:
            raise LocationUnavailableError(f"Location payload missing coordinates: {exc.error_count()} errors") from exc


class LocationSampler:
    """Apply timeout and cached-fix reuse around a provider.

    A fix younger than ``request.maximum_age`` is returned without asking the
    provider again. Any provider failure that is not already a
    :class:`LocationError` becomes :class:`LocationUnknownError`.
    """

    def __init__(self, provider: LocationProvider | None) -> None:
        self._provider = provider
        self._cached: LocationFix | None = None

    @property
    def last_fix(self) -> LocationFix | None:
        return self._cached

    async def sample(self, request: LocationRequest) -> LocationFix:
        if self._provider is None:
            raise LocationUnsupportedError()

        cached = self._cached
        if cached is not None and request.maximum_age > 0:
            age_ms = cached.age_millis(int(time.time() * 1000))
            if 0 <= age_ms <= request.maximum_age * 1000:
                _logger.debug("Reusing cached fix age_ms=%s", age_ms)
                return cached

        try:
            fix = await asyncio.wait_for(self._provider.get_fix(request), request.timeout)
        except TimeoutError as exc:
            raise LocationTimeoutError() from exc
        except LocationError:
            raise
        except Exception as exc:
            _logger.debug("Location provider failed", exc_info=True)
            raise LocationUnknownError(str(exc) or None) from exc

        self._cached = fix
        return fix
