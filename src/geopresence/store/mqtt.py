"""MQTT backend built on retained messages.

Each key maps to the topic ``<topic_prefix>/<key>``. ``overwrite`` publishes
the record as a retained QoS 1 message, so the broker keeps exactly one value
and replays it to every new subscriber. An empty retained payload means "no
record". Brokers assign no write time, so ``serverTimestamp`` is left unset.

paho-mqtt runs its network loop on a background thread; every callback is
handed back to the asyncio loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Mapping
from typing import Any, cast

import paho.mqtt.client as mqtt

from geopresence._redact import redact_for_log
from geopresence.config import MqttSettings
from geopresence.exceptions import StoreError, StoreSubscribeError, StoreWriteError
from geopresence.store.base import ErrorCallback, ValueCallback, safe_dispatch

_logger = logging.getLogger(__name__)

#: Seconds to wait for a retained message before reporting "no record".
RETAINED_GRACE_SECONDS = 1.0
PUBLISH_TIMEOUT_SECONDS = 10.0


def decode_retained_payload(payload: bytes) -> Any:
    """Decode a retained payload; empty means no record.

    Undecodable payloads are returned as text so the subscriber can
    report a processing error instead of the store dropping them.
    """
    if not payload:
        return None
    text = payload.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class MqttStatusStore:
    """Threaded paho-mqtt client exposing the store interface on an asyncio loop."""

    def __init__(
        self,
        settings: MqttSettings,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        retained_grace: float = RETAINED_GRACE_SECONDS,
    ) -> None:
        self._settings = settings
        self._loop = loop
        self._retained_grace = retained_grace
        self._client: mqtt.Client | None = None
        self._running = False
        self._start_lock = asyncio.Lock()
        self._listeners: dict[str, list[tuple[ValueCallback, ErrorCallback]]] = {}
        self._pending_first: dict[str, asyncio.TimerHandle] = {}
        self._latest: dict[str, Any] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    def topic_for(self, key: str) -> str:
        return f"{self._settings.topic_prefix.rstrip('/')}/{key}"

    def key_for(self, topic: str) -> str | None:
        prefix = f"{self._settings.topic_prefix.rstrip('/')}/"
        if not topic.startswith(prefix):
            return None
        return topic[len(prefix) :]

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    async def _ensure_started(self) -> mqtt.Client:
        loop = self._require_loop()
        async with self._start_lock:
            if self._client is not None and self._running:
                return self._client
            try:
                await loop.run_in_executor(None, self._start)
            except (OSError, ValueError) as exc:
                raise StoreError(f"MQTT connect to {self._settings.host}:{self._settings.port} failed: {exc}") from exc
            assert self._client is not None  # noqa: S101
            return self._client

    def _start(self) -> None:
        settings = self._settings
        _logger.debug("MQTT start requested settings=%s", redact_for_log(dataclasses.asdict(settings)))
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=settings.client_id or "",
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(_logger)
        if settings.username:
            client.username_pw_set(settings.username, settings.password)
        if settings.tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                _logger.warning("MQTT connect failed: %s", reason_code)
                self._loop_call(self._fail_all, f"MQTT connect failed: {reason_code}")
                return
            _logger.debug("MQTT connected reason=%s", reason_code)
            for key in list(self._listeners):
                c.subscribe(self.topic_for(key), qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            key = self.key_for(msg.topic)
            if key is None:
                return
            self._loop_call(self._handle_message, key, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running and reason_code.is_failure:
                _logger.warning("MQTT disconnected: %s", reason_code)
                self._loop_call(self._fail_all, f"MQTT connection lost: {reason_code}")

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(settings.host, settings.port, keepalive=settings.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        _logger.debug("MQTT network loop started")

    def _loop_call(self, fn: Any, *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(fn, *args)

    def _handle_message(self, key: str, payload: bytes) -> None:
        handle = self._pending_first.pop(key, None)
        if handle is not None:
            handle.cancel()
        value = decode_retained_payload(payload)
        self._latest[key] = value
        _logger.debug("MQTT value for %s: %s", key, value)
        for on_value, _on_error in list(self._listeners.get(key, [])):
            safe_dispatch(on_value, value, _logger)

    def _deliver_empty(self, key: str) -> None:
        self._pending_first.pop(key, None)
        self._latest[key] = None
        _logger.debug("No retained value for %s", key)
        for on_value, _on_error in list(self._listeners.get(key, [])):
            safe_dispatch(on_value, None, _logger)

    def _fail_all(self, message: str) -> None:
        for key, entries in list(self._listeners.items()):
            for _on_value, on_error in entries:
                safe_dispatch(on_error, StoreSubscribeError(message, key=key), _logger)

    async def overwrite(self, key: str, value: Mapping[str, Any]) -> None:
        try:
            client = await self._ensure_started()
        except StoreError as exc:
            raise StoreWriteError(str(exc), key=key) from exc

        payload = json.dumps(dict(value), separators=(",", ":"))
        info = client.publish(self.topic_for(key), payload, qos=1, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise StoreWriteError(f"Publish to {key} failed: {mqtt.error_string(info.rc)}", key=key)
        try:
            await self._require_loop().run_in_executor(None, info.wait_for_publish, PUBLISH_TIMEOUT_SECONDS)
        except (RuntimeError, ValueError) as exc:
            raise StoreWriteError(f"Publish to {key} failed: {exc}", key=key) from exc
        if not info.is_published():
            raise StoreWriteError(f"Publish to {key} was not acknowledged", key=key)

    async def subscribe(self, key: str, on_value: ValueCallback, on_error: ErrorCallback) -> None:
        try:
            client = await self._ensure_started()
        except StoreError as exc:
            safe_dispatch(on_error, StoreSubscribeError(str(exc), key=key), _logger)
            return

        first_listener = key not in self._listeners
        self._listeners.setdefault(key, []).append((on_value, on_error))
        if not first_listener:
            if key in self._latest:
                safe_dispatch(on_value, self._latest[key], _logger)
            return
        result, _mid = client.subscribe(self.topic_for(key), qos=1)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._listeners.pop(key, None)
            safe_dispatch(
                on_error,
                StoreSubscribeError(f"Subscribe to {key} failed: {mqtt.error_string(result)}", key=key),
                _logger,
            )
            return
        self._pending_first[key] = self._require_loop().call_later(self._retained_grace, self._deliver_empty, key)

    async def unsubscribe(self, key: str) -> None:
        self._listeners.pop(key, None)
        self._latest.pop(key, None)
        handle = self._pending_first.pop(key, None)
        if handle is not None:
            handle.cancel()
        if self._client is not None and self._running:
            self._client.unsubscribe(self.topic_for(key))

    async def close(self) -> None:
        for key in list(self._listeners):
            await self.unsubscribe(key)
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        if client is None:
            return
        try:
            if was_running:
                _logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("MQTT network loop stopped")
