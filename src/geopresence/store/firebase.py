"""Firebase Realtime Database backend over the REST streaming API.

``overwrite`` is a ``PUT /<key>.json`` whose ``serverTimestamp`` field is the
``{".sv": "timestamp"}`` placeholder, resolved by Firebase on write.

``subscribe`` opens ``GET /<key>.json`` with ``Accept: text/event-stream``.
Firebase answers with server-sent events:

* ``put``: ``{"path": ..., "data": ...}`` replaces the value at *path*
  (the first event carries the whole value at ``/``)
* ``patch``: ``{"path": ..., "data": {...}}`` merges children at *path*
* ``keep-alive``: no payload
* ``cancel`` / ``auth_revoked``: the stream is over
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp

from geopresence._constants import USER_AGENT
from geopresence._redact import redact_url
from geopresence.config import FirebaseSettings
from geopresence.exceptions import PresenceConfigError, StoreSubscribeError, StoreWriteError
from geopresence.models.status import SERVER_TIMESTAMP_FIELD
from geopresence.store.base import ErrorCallback, ValueCallback, safe_dispatch

_logger = logging.getLogger(__name__)

SERVER_VALUE_TIMESTAMP: dict[str, str] = {".sv": "timestamp"}


@dataclass(frozen=True)
class SseEvent:
    event: str
    data: str


class SseDecoder:
    """Incremental ``text/event-stream`` decoder fed one line at a time."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []

    def feed_line(self, line: str) -> SseEvent | None:
        """Consume one line (without its terminator); return an event on a blank line."""
        if not line:
            if not self._event and not self._data:
                return None
            event = SseEvent(event=self._event or "message", data="\n".join(self._data))
            self._event = ""
            self._data = []
            return event
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None


def _path_segments(path: str) -> list[str]:
    return [segment for segment in path.split("/") if segment]


def apply_put(current: Any, path: str, data: Any) -> Any:
    """Return *current* with *data* written at *path* (``None`` deletes)."""
    segments = _path_segments(path)
    if not segments:
        return copy.deepcopy(data)

    root: dict[str, Any] = copy.deepcopy(current) if isinstance(current, dict) else {}
    node = root
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    if data is None:
        node.pop(segments[-1], None)
    else:
        node[segments[-1]] = copy.deepcopy(data)
    return root or None


def apply_patch(current: Any, path: str, data: Mapping[str, Any]) -> Any:
    """Return *current* with each child of *data* put under *path*."""
    result = current
    base = path.rstrip("/")
    for child, value in data.items():
        result = apply_put(result, f"{base}/{child}", value)
    return result


class FirebaseStatusStore:
    """Realtime Database client for a single status record per key."""

    def __init__(self, settings: FirebaseSettings, http_session: aiohttp.ClientSession) -> None:
        if not settings.database_url:
            raise PresenceConfigError("Firebase database_url is required")
        self._settings = settings
        self._http = http_session
        self._streams: dict[str, list[asyncio.Task[None]]] = {}

    def _url(self, key: str) -> str:
        return f"{self._settings.database_url.rstrip('/')}/{key}.json"

    def _params(self) -> dict[str, str]:
        if self._settings.auth_token:
            return {"auth": self._settings.auth_token}
        return {}

    async def overwrite(self, key: str, value: Mapping[str, Any]) -> None:
        body = dict(value)
        body[SERVER_TIMESTAMP_FIELD] = SERVER_VALUE_TIMESTAMP
        url = self._url(key)
        _logger.debug("PUT %s body=%s", redact_url(url), body)

        try:
            async with self._http.put(url, params=self._params(), json=body) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise StoreWriteError(f"HTTP {resp.status} writing {key}: {text[:200]}", key=key)
        except StoreWriteError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreWriteError(f"Write to {key} failed: {exc}", key=key) from exc

    async def subscribe(self, key: str, on_value: ValueCallback, on_error: ErrorCallback) -> None:
        task = asyncio.create_task(self._stream(key, on_value, on_error), name=f"firebase-stream-{key}")
        self._streams.setdefault(key, []).append(task)

    async def unsubscribe(self, key: str) -> None:
        tasks = self._streams.pop(key, [])
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def close(self) -> None:
        for key in list(self._streams):
            await self.unsubscribe(key)

    async def _stream(self, key: str, on_value: ValueCallback, on_error: ErrorCallback) -> None:
        url = self._url(key)
        headers = {"accept": "text/event-stream", "user-agent": USER_AGENT}
        timeout = aiohttp.ClientTimeout(total=None, sock_read=None)
        _logger.debug("Opening stream %s", redact_url(url))

        try:
            async with self._http.get(url, params=self._params(), headers=headers, timeout=timeout) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    safe_dispatch(
                        on_error,
                        StoreSubscribeError(f"HTTP {resp.status} subscribing to {key}: {text[:200]}", key=key),
                        _logger,
                    )
                    return
                await self._consume(key, resp.content, on_value, on_error)
        except asyncio.CancelledError:
            _logger.debug("Stream %s cancelled", key)
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            safe_dispatch(on_error, StoreSubscribeError(f"Stream for {key} failed: {exc}", key=key), _logger)
        except ValueError as exc:
            # Undecodable bytes or a line over the reader's buffer limit.
            _logger.warning("Stream for %s sent unreadable data", key, exc_info=True)
            safe_dispatch(on_error, StoreSubscribeError(f"Stream for {key} failed: {exc}", key=key), _logger)

    async def _consume(
        self,
        key: str,
        content: aiohttp.StreamReader,
        on_value: ValueCallback,
        on_error: ErrorCallback,
    ) -> None:
        decoder = SseDecoder()
        current: Any = None
        async for raw_line in content:
            event = decoder.feed_line(raw_line.decode("utf-8").rstrip("\r\n"))
            if event is None:
                continue
            if event.event == "keep-alive":
                continue
            if event.event in ("cancel", "auth_revoked"):
                reason = "permission denied" if event.event == "cancel" else "auth token revoked"
                safe_dispatch(on_error, StoreSubscribeError(f"Subscription to {key} ended: {reason}", key=key), _logger)
                return
            if event.event not in ("put", "patch"):
                _logger.debug("Ignoring stream event %s", event.event)
                continue

            try:
                message = json.loads(event.data)
            except json.JSONDecodeError:
                _logger.debug("Malformed %s event on %s: %s", event.event, key, event.data[:200])
                continue
            if not isinstance(message, dict):
                continue
            path = str(message.get("path") or "/")
            data = message.get("data")
            if event.event == "put":
                current = apply_put(current, path, data)
            elif isinstance(data, dict):
                current = apply_patch(current, path, data)
            _logger.debug("Stream %s %s path=%s", key, event.event, path)
            safe_dispatch(on_value, copy.deepcopy(current), _logger)

        safe_dispatch(on_error, StoreSubscribeError(f"Stream for {key} closed by server", key=key), _logger)
