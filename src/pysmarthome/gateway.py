"""Device communication gateway.

:class:`DeviceGateway` decouples the reconciliation engine from the wire
protocol; :class:`MqttDeviceGateway` is the MQTT implementation. The gateway
is an ordinary object: create one per process and inject it.

Usage::

    async with MqttDeviceGateway(GatewayConfig(broker_url="tcp://broker:1883")) as gateway:
        await gateway.send_command(home_id, room_id, device_id, TurnOn())
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pysmarthome._mqtt import MqttTransport
from pysmarthome.config import GatewayConfig
from pysmarthome.connection import ConnectionManager, ConnectionState, StateListener
from pysmarthome.models.command import Command
from pysmarthome.models.updates import StateUpdate, StatusUpdate
from pysmarthome.publisher import CommandPublisher
from pysmarthome.subscriber import EventStream, EventSubscriber, SubscriptionRegistry


class DeviceGateway(Protocol):
    """What the reconciliation engine needs from a device transport."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    def is_connected(self) -> bool: ...

    async def send_command(self, home_id: str, room_id: str, device_id: str, command: Command) -> None:
        """Fire-and-forget; confirmation arrives via :meth:`observe_device_state`."""
        ...

    def observe_device_state(self, device_id: str) -> EventStream[StateUpdate]: ...

    def observe_device_status(self, device_id: str) -> EventStream[StatusUpdate]: ...


class MqttDeviceGateway:
    """MQTT implementation of :class:`DeviceGateway`."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        transport: MqttTransport | None = None,
        reconnect_sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._config = config
        self._registry = SubscriptionRegistry()
        self._subscriber = EventSubscriber(
            registry=self._registry,
            base_topic=config.base_topic,
            buffer_size=config.event_buffer_size,
        )
        self._connection = ConnectionManager(
            config,
            registry=self._registry,
            on_connected=self._subscriber.setup_subscriptions,
            on_message=self._subscriber.handle_message,
            on_subscribe_failed=self._subscriber.subscription_failed,
            transport=transport,
            reconnect_sleep=reconnect_sleep,
        )
        self._publisher = CommandPublisher(self._connection, base_topic=config.base_topic)

    async def __aenter__(self) -> MqttDeviceGateway:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def subscriptions(self) -> frozenset[str]:
        """Wildcards subscribed in the current session."""
        return self._registry.snapshot()

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        return self._connection.add_state_listener(listener)

    async def connect(self) -> None:
        await self._connection.connect()

    async def disconnect(self) -> None:
        await self._connection.disconnect()

    def is_connected(self) -> bool:
        return self._connection.is_connected()

    async def send_command(self, home_id: str, room_id: str, device_id: str, command: Command) -> None:
        await self._publisher.send_command(home_id, room_id, device_id, command)

    def observe_device_state(self, device_id: str) -> EventStream[StateUpdate]:
        return self._subscriber.observe_device_state(device_id)

    def observe_device_status(self, device_id: str) -> EventStream[StatusUpdate]:
        return self._subscriber.observe_device_status(device_id)
