"""MQTT session ownership and the connection state machine.

::

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> RECONNECTING -> CONNECTING      (unexpected loss)
    any -> DISCONNECTED                          (explicit disconnect)

Only this module and the reconnect scheduler it drives move the state.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
from collections.abc import Awaitable, Callable

from pysmarthome._constants import QOS_STATUS
from pysmarthome._mqtt import LastWill, MqttTransport, PahoMqttRuntime, TransportHandlers
from pysmarthome._redact import redact_for_log
from pysmarthome.codec import encode_status
from pysmarthome.config import GatewayConfig
from pysmarthome.exceptions import SmartHomeTransportError
from pysmarthome.reconnect import ReconnectScheduler
from pysmarthome.subscriber import SubscriptionRegistry
from pysmarthome.topics import build_app_status_topic

_logger = logging.getLogger(__name__)


class ConnectionState(enum.StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


StateListener = Callable[[ConnectionState, ConnectionState], None]


class ConnectionManager:
    """Owns the transport session.

    Parameters
    ----------
    config : GatewayConfig
        Broker address, timeouts and backoff bounds.
    registry : SubscriptionRegistry
        Cleared unconditionally on :meth:`disconnect`.
    on_connected : callable
        Invoked with the live transport after every successful connect,
        before the state becomes ``CONNECTED`` (subscription setup).
    on_message : callable
        Receives ``(topic, payload)`` for every inbound message.
    on_subscribe_failed : callable
        Receives a pattern the broker refused.
    transport : MqttTransport or None
        Injected transport; defaults to a paho-mqtt runtime bound to the
        running loop on first connect.
    reconnect_sleep : callable or None
        Sleep used between reconnect attempts (tests).
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        registry: SubscriptionRegistry,
        on_connected: Callable[[MqttTransport], None],
        on_message: Callable[[str, bytes], None],
        on_subscribe_failed: Callable[[str], None],
        transport: MqttTransport | None = None,
        reconnect_sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._on_connected = on_connected
        self._transport = transport
        self._handlers = TransportHandlers(
            on_message=on_message,
            on_connection_lost=self._handle_connection_lost,
            on_subscribe_failed=on_subscribe_failed,
        )
        self._lock = asyncio.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._listeners: list[StateListener] = []
        self._shutdown = False

        self._reconnect = ReconnectScheduler(
            self._reconnect_attempt,
            initial_delay=config.initial_reconnect_delay,
            max_delay=config.max_reconnect_delay,
            sleep=reconnect_sleep or asyncio.sleep,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_scheduler(self) -> ReconnectScheduler:
        return self._reconnect

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener(old, new)``; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def is_connected(self) -> bool:
        transport = self._transport
        return self._state is ConnectionState.CONNECTED and transport is not None and transport.is_connected()

    def _set_state(self, new: ConnectionState) -> None:
        old = self._state
        if old is new:
            return
        self._state = new
        _logger.debug("Connection state %s -> %s", old, new)
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                _logger.warning("Connection state listener failed", exc_info=True)

    def _require_transport(self) -> MqttTransport:
        if self._transport is None:
            self._transport = PahoMqttRuntime(self._config, loop=asyncio.get_running_loop(), logger=_logger)
        return self._transport

    def _last_will(self) -> LastWill:
        return LastWill(
            topic=build_app_status_topic(base=self._config.base_topic),
            payload=encode_status(False),
            qos=QOS_STATUS,
            retain=True,
        )

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect to the broker; a no-op when already connected.

        A failed attempt does not raise: the manager moves to
        ``RECONNECTING`` and the reconnect scheduler takes over.
        """
        async with self._lock:
            if self.is_connected():
                _logger.debug("Already connected")
                return
            self._shutdown = False
            connected = await self._attempt_locked()
        if not connected and not self._shutdown:
            self._reconnect.start()

    async def _reconnect_attempt(self) -> bool:
        async with self._lock:
            if self._shutdown:
                return True
            if self.is_connected():
                return True
            return await self._attempt_locked()

    async def _attempt_locked(self) -> bool:
        transport = self._require_transport()
        self._set_state(ConnectionState.CONNECTING)
        _logger.debug("Connecting with config %s", redact_for_log(self._config))
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, functools.partial(transport.start, self._last_will(), self._handlers))
        except (SmartHomeTransportError, OSError) as exc:
            _logger.warning("Connection to %s failed: %s", self._config.broker_url, exc)
            self._set_state(ConnectionState.RECONNECTING)
            return False

        if self._shutdown:
            # disconnect() ran while the attempt was in flight.
            await loop.run_in_executor(None, transport.stop)
            return True

        if not transport.is_connected():
            # Dropped after CONNACK but before we resumed; the loss callback saw CONNECTING.
            _logger.warning("Connection to %s lost during setup", self._config.broker_url)
            self._set_state(ConnectionState.RECONNECTING)
            return False

        _logger.info("Connected to MQTT broker %s", self._config.broker_url)
        self._on_connected(transport)
        self._set_state(ConnectionState.CONNECTED)
        return True

    def _handle_connection_lost(self, reason: str) -> None:
        if self._shutdown or self._state is not ConnectionState.CONNECTED:
            return
        _logger.warning("Connection lost: %s", reason)
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect.start()

    async def disconnect(self) -> None:
        """Stop reconnecting, release the session and clear subscriptions."""
        self._shutdown = True
        await self._reconnect.stop()
        async with self._lock:
            transport = self._transport
            if transport is not None:
                _logger.debug("Disconnecting from MQTT broker")
                try:
                    await asyncio.get_running_loop().run_in_executor(None, transport.stop)
                except (SmartHomeTransportError, OSError) as exc:
                    _logger.error("Disconnect error: %s", exc)
            self._registry.clear()
            self._set_state(ConnectionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def publish(self, topic: str, payload: str, *, qos: int, retain: bool = False) -> None:
        transport = self._transport
        if transport is None:
            raise SmartHomeTransportError(f"Cannot publish to {topic}: no session")
        transport.publish(topic, payload, qos=qos, retain=retain)
