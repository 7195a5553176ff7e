"""Internal MQTT transport: the paho-mqtt runtime and its structural protocol."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pysmarthome.config import GatewayConfig
from pysmarthome.exceptions import SmartHomeConnectionTimeout, SmartHomeTransportError


@dataclass(frozen=True)
class LastWill:
    """Message the broker publishes for us if the session drops uncleanly."""

    topic: str
    payload: str
    qos: int
    retain: bool


@dataclass(frozen=True)
class TransportHandlers:
    """Callbacks a transport invokes. Always called on the asyncio loop thread."""

    on_message: Callable[[str, bytes], None]
    on_connection_lost: Callable[[str], None]
    on_subscribe_failed: Callable[[str], None]


class MqttTransport(Protocol):
    """Structural transport interface used by the connection manager.

    ``start`` and ``stop`` may block (they run in an executor); ``publish``
    and ``subscribe`` only enqueue and must not block. Failures are reported
    as :class:`~pysmarthome.exceptions.SmartHomeTransportError`.
    """

    def start(self, will: LastWill, handlers: TransportHandlers) -> None: ...

    def stop(self) -> None: ...

    def is_connected(self) -> bool: ...

    def publish(self, topic: str, payload: str, *, qos: int, retain: bool) -> None: ...

    def subscribe(self, topic: str, *, qos: int) -> None: ...


class PahoMqttRuntime:
    """Threaded paho-mqtt runtime that hands callbacks to an asyncio loop.

    paho's own automatic reconnect is disabled: reconnection is driven by
    :class:`~pysmarthome.reconnect.ReconnectScheduler`. The session is
    non-clean so the broker keeps our subscriptions across reconnects.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._client: mqtt.Client | None = None
        # Guards _pending_subscribes; SUBACKs are handled on the network thread.
        self._subscribe_lock = threading.Lock()
        self._pending_subscribes: dict[int, str] = {}

    def is_connected(self) -> bool:
        client = self._client
        return client is not None and client.is_connected()

    def _dispatch(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Loop already closed during interpreter shutdown.
            self._logger.debug("Dropping MQTT callback, event loop is closed")

    def start(self, will: LastWill, handlers: TransportHandlers) -> None:
        """Connect and block until the broker acknowledges (or timeout)."""
        host, port, tls = self._config.broker
        timeout = self._config.connection_timeout

        with self._lock:
            self._stop_locked()
            self._logger.debug(
                "MQTT runtime start requested host=%s port=%s tls=%s client_id=%s",
                host,
                port,
                tls,
                self._config.client_id,
            )

            client = mqtt.Client(
                callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
                client_id=self._config.client_id,
                clean_session=False,
                protocol=mqtt.MQTTv311,
                reconnect_on_failure=False,
            )
            client.enable_logger(self._logger)
            if self._config.username:
                client.username_pw_set(self._config.username, self._config.password)
            if tls:
                client.tls_set()
            client.will_set(will.topic, will.payload, qos=will.qos, retain=will.retain)
            client.connect_timeout = timeout

            connack = threading.Event()
            established = threading.Event()
            failure: list[Any] = []

            def on_connect(
                _c: mqtt.Client,
                _userdata: Any,
                _flags: Any,
                reason_code: Any,
                _properties: Any,
            ) -> None:
                if reason_code.is_failure:
                    self._logger.warning("MQTT connect refused: %s", reason_code)
                    failure.append(reason_code)
                else:
                    self._logger.debug("MQTT connected reason=%s", reason_code)
                    established.set()
                connack.set()

            def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
                self._dispatch(handlers.on_message, msg.topic, bytes(msg.payload))

            def on_disconnect(
                c: mqtt.Client,
                _userdata: Any,
                _disconnect_flags: Any,
                reason_code: Any,
                _properties: Any,
            ) -> None:
                # stop() detaches the client first, so only unexpected drops get here.
                if self._client is c and established.is_set():
                    self._logger.debug("MQTT disconnected: %s", reason_code)
                    self._dispatch(handlers.on_connection_lost, str(reason_code))

            def on_subscribe(
                _c: mqtt.Client,
                _userdata: Any,
                mid: int,
                reason_code_list: list[Any],
                _properties: Any,
            ) -> None:
                with self._subscribe_lock:
                    topic = self._pending_subscribes.pop(mid, None)
                if topic is None:
                    return
                if any(rc.is_failure for rc in reason_code_list):
                    self._dispatch(handlers.on_subscribe_failed, topic)

            def on_publish(
                _c: mqtt.Client,
                _userdata: Any,
                mid: int,
                reason_code: Any,
                _properties: Any,
            ) -> None:
                if reason_code.is_failure:
                    self._logger.error("MQTT publish mid=%s rejected: %s", mid, reason_code)

            client.on_connect = on_connect
            client.on_message = on_message
            client.on_disconnect = on_disconnect
            client.on_subscribe = on_subscribe
            client.on_publish = on_publish

            self._client = client
            try:
                client.connect(host, port, keepalive=self._config.keepalive)
            except (OSError, ValueError) as exc:
                self._client = None
                raise SmartHomeTransportError(
                    f"Connect to {host}:{port} failed: {exc}",
                    broker=f"{host}:{port}",
                ) from exc
            client.loop_start()
            self._logger.debug("MQTT network loop started")

            if not connack.wait(timeout):
                self._stop_locked()
                raise SmartHomeConnectionTimeout(
                    f"No CONNACK from {host}:{port} within {timeout}s",
                    broker=f"{host}:{port}",
                )
            if failure:
                self._stop_locked()
                reason = failure[0]
                raise SmartHomeTransportError(
                    f"Broker {host}:{port} refused connection: {reason}",
                    reason_code=getattr(reason, "value", None),
                    broker=f"{host}:{port}",
                )

    def stop(self) -> None:
        """Disconnect gracefully (no last will) and stop the network loop."""
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        client = self._client
        self._client = None
        with self._subscribe_lock:
            self._pending_subscribes.clear()
        if client is None:
            return
        try:
            self._logger.debug("MQTT disconnect requested")
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def publish(self, topic: str, payload: str, *, qos: int, retain: bool) -> None:
        client = self._client
        if client is None or not client.is_connected():
            raise SmartHomeTransportError(f"Cannot publish to {topic}: not connected")
        info = client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise SmartHomeTransportError(
                f"Publish to {topic} failed: {mqtt.error_string(info.rc)}",
                reason_code=info.rc,
            )

    def subscribe(self, topic: str, *, qos: int) -> None:
        client = self._client
        if client is None or not client.is_connected():
            raise SmartHomeTransportError(f"Cannot subscribe to {topic}: not connected")
        # The mid is recorded before on_subscribe can look it up.
        with self._subscribe_lock:
            result, mid = client.subscribe(topic, qos=qos)
            if result == mqtt.MQTT_ERR_SUCCESS and mid is not None:
                self._pending_subscribes[mid] = topic
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise SmartHomeTransportError(
                f"Subscribe to {topic} failed: {mqtt.error_string(result)}",
                reason_code=result,
            )
