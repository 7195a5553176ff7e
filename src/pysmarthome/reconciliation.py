"""Reconciliation between the local store and the device gateway.

User commands are applied optimistically: the store is written first (new
state, ``WAITING``, placeholder message) and the command is then published.
Confirmations arrive later on the device's state stream and are folded back
into the store as ``CONFIRMED``. A publish failure never rolls back the
optimistic write.

Every device is attached individually (two observation tasks: state and
status) when it is created and, for devices already in the store, on
:meth:`ReconciliationEngine.start`. Removing a device detaches it before the
store record goes away.

Commands carry no correlation id, so a late confirmation for an older
command can overwrite a newer optimistic write.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, assert_never

from pysmarthome._constants import AWAITING_CONFIRMATION_MESSAGE, STATE_UPDATED_MESSAGE
from pysmarthome.exceptions import SmartHomeError
from pysmarthome.gateway import DeviceGateway
from pysmarthome.models.command import Command, RequestState, SetValue, TurnOff, TurnOn
from pysmarthome.models.device import Device, DeviceState, DeviceType, NumericValue, Off, On, ResponseStatus
from pysmarthome.models.home import Home, Room
from pysmarthome.models.updates import StateUpdate, StatusUpdate
from pysmarthome.store import DeviceStore
from pysmarthome.subscriber import EventStream

_logger = logging.getLogger(__name__)


def toggled(state: DeviceState) -> tuple[DeviceState, Command]:
    """Return the target state and wire command for a toggle of *state*.

    ``Off`` turns on; ``On`` and any numeric value turn off.
    """
    if isinstance(state, Off):
        return On(), TurnOn()
    if isinstance(state, On):
        return Off(), TurnOff()
    if isinstance(state, NumericValue):
        return Off(), TurnOff()
    assert_never(state)


class ReconciliationEngine:
    """Coordinates the store and a :class:`~pysmarthome.gateway.DeviceGateway`.

    Parameters
    ----------
    store : DeviceStore
        Source of truth for homes, rooms and devices.
    gateway : DeviceGateway
        Injected device transport.
    """

    def __init__(self, store: DeviceStore, gateway: DeviceGateway) -> None:
        self._store = store
        self._gateway = gateway
        self._observers: dict[str, tuple[asyncio.Task[None], asyncio.Task[None]]] = {}

    async def __aenter__(self) -> ReconciliationEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def store(self) -> DeviceStore:
        return self._store

    @property
    def gateway(self) -> DeviceGateway:
        return self._gateway

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect the gateway and attach every device already in the store."""
        try:
            await self._gateway.connect()
        except SmartHomeError as exc:
            _logger.error("Gateway connect failed: %s", exc)
        for device in await self._store.list_devices():
            self._attach(device.id)
        _logger.info("Reconciliation started with %d device(s)", len(self._observers))

    async def stop(self) -> None:
        for device_id in list(self._observers):
            await self._detach(device_id)
        await self._gateway.disconnect()
        _logger.info("Reconciliation stopped")

    def is_attached(self, device_id: str) -> bool:
        return device_id in self._observers

    # ------------------------------------------------------------------
    # Homes and rooms
    # ------------------------------------------------------------------

    async def add_home(self, name: str) -> Home:
        home = Home(name=name)
        await self._store.insert_home(home)
        return home

    async def remove_home(self, home_id: str) -> bool:
        for room in await self._store.list_rooms(home_id):
            await self._detach_room(room.id)
        return await self._store.delete_home(home_id)

    async def add_room(self, home_id: str, name: str) -> Room | None:
        if await self._store.get_home(home_id) is None:
            _logger.warning("Cannot add room %r: home %s does not exist", name, home_id)
            return None
        room = Room(name=name, home_id=home_id)
        await self._store.insert_room(room)
        return room

    async def remove_room(self, room_id: str) -> bool:
        await self._detach_room(room_id)
        return await self._store.delete_room(room_id)

    async def _detach_room(self, room_id: str) -> None:
        for device in await self._store.list_devices(room_id):
            await self._detach(device.id)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def add_device(self, room_id: str, name: str, device_type: DeviceType) -> Device | None:
        """Create a device, start observing it and ask it for its state."""
        room = await self._store.get_room(room_id)
        if room is None:
            _logger.warning("Cannot add device %r: room %s does not exist", name, room_id)
            return None
        device = Device(name=name, type=device_type, room_id=room_id)
        await self._store.insert_device(device)
        self._attach(device.id)
        if self._gateway.is_connected():
            await self._send(device, RequestState())
        return device

    async def remove_device(self, device_id: str) -> bool:
        await self._detach(device_id)
        return await self._store.delete_device(device_id)

    async def rename_device(self, device_id: str, name: str) -> Device | None:
        return await self._store.update_device(device_id, name=name)

    async def move_device_to_room(self, device_id: str, room_id: str) -> Device | None:
        if await self._store.get_room(room_id) is None:
            _logger.warning("Cannot move %s: room %s does not exist", device_id, room_id)
            return None
        return await self._store.update_device(device_id, room_id=room_id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def toggle_device(self, device_id: str) -> Device | None:
        device = await self._store.get_device(device_id)
        if device is None:
            _logger.warning("Cannot toggle unknown device %s", device_id)
            return None
        if device.type.is_read_only:
            _logger.warning("Cannot toggle read-only %s %s", device.type.display_name, device_id)
            return None
        target, command = toggled(device.state)
        return await self._apply_command(device, target, command)

    async def set_device_value(self, device_id: str, value: float) -> Device | None:
        device = await self._store.get_device(device_id)
        if device is None:
            _logger.warning("Cannot set value on unknown device %s", device_id)
            return None
        if not device.type.accepts_value:
            _logger.warning("%s %s does not accept values", device.type.display_name, device_id)
            return None
        return await self._apply_command(device, NumericValue(value=value), SetValue(value=value))

    async def request_device_state(self, device_id: str) -> None:
        """Ask the device to report; the store is untouched until it does."""
        device = await self._store.get_device(device_id)
        if device is None:
            _logger.warning("Cannot request state of unknown device %s", device_id)
            return
        await self._send(device, RequestState())

    async def _apply_command(self, device: Device, target: DeviceState, command: Command) -> Device | None:
        updated = await self._store.update_device(
            device.id,
            state=target,
            response_status=ResponseStatus.WAITING,
            response_message=AWAITING_CONFIRMATION_MESSAGE,
        )
        if updated is None:
            _logger.warning("Device %s removed before %s was sent", device.id, command.kind)
            return None
        await self._send(device, command)
        return updated

    async def _send(self, device: Device, command: Command) -> None:
        room = await self._store.get_room(device.room_id)
        if room is None:
            _logger.warning("Device %s has no room %s, command %s not sent", device.id, device.room_id, command.kind)
            return
        try:
            await self._gateway.send_command(room.home_id, room.id, device.id, command)
        except SmartHomeError as exc:
            _logger.error("Sending %s to %s failed: %s", command.kind, device.id, exc)

    # ------------------------------------------------------------------
    # Response status
    # ------------------------------------------------------------------

    async def response_status(self, device_id: str) -> ResponseStatus | None:
        device = await self._store.get_device(device_id)
        return device.response_status if device is not None else None

    async def clear_response(self, device_id: str) -> Device | None:
        """Acknowledge a confirmation: ``CONFIRMED`` goes back to ``IDLE``."""
        device = await self._store.get_device(device_id)
        if device is None or device.response_status is not ResponseStatus.CONFIRMED:
            return device
        return await self._store.update_device(device_id, response_status=ResponseStatus.IDLE, response_message=None)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def _attach(self, device_id: str) -> None:
        if device_id in self._observers:
            return
        # Streams attach on creation, so nothing emitted from here on is missed.
        states = self._gateway.observe_device_state(device_id)
        statuses = self._gateway.observe_device_status(device_id)
        self._observers[device_id] = (
            asyncio.create_task(self._consume(states, self._on_state), name=f"pysmarthome-state-{device_id}"),
            asyncio.create_task(self._consume(statuses, self._on_status), name=f"pysmarthome-status-{device_id}"),
        )
        _logger.debug("Attached device %s", device_id)

    async def _detach(self, device_id: str) -> None:
        tasks = self._observers.pop(device_id, None)
        if tasks is None:
            return
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        _logger.debug("Detached device %s", device_id)

    async def _consume(self, stream: EventStream[Any], handler: Callable[[Any], Awaitable[None]]) -> None:
        async with stream:
            async for event in stream:
                try:
                    await handler(event)
                except Exception:
                    _logger.exception("Failed to apply %s", type(event).__name__)

    async def _on_state(self, update: StateUpdate) -> None:
        if update.device_id not in self._observers:
            return
        message = update.message if update.message is not None else STATE_UPDATED_MESSAGE
        updated = await self._store.update_device(
            update.device_id,
            state=update.state,
            response_status=ResponseStatus.CONFIRMED,
            response_message=message,
        )
        if updated is None:
            _logger.debug("State for unknown device %s ignored", update.device_id)

    async def _on_status(self, update: StatusUpdate) -> None:
        if update.device_id not in self._observers:
            return
        updated = await self._store.update_device(update.device_id, is_online=update.online)
        if updated is None:
            _logger.debug("Status for unknown device %s ignored", update.device_id)
