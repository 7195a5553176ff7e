"""Local store: the single source of truth for homes, rooms and devices.

The engine only needs the narrow async contract of :class:`DeviceStore`;
:class:`InMemoryDeviceStore` is the implementation shipped with the library.
Records are immutable pydantic models, so snapshots handed out are never
mutated behind the caller's back.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any, Protocol

from pydantic import BaseModel

from pysmarthome.models.device import Device
from pysmarthome.models.home import Home, Room

_logger = logging.getLogger(__name__)

_UPDATABLE_DEVICE_FIELDS = frozenset(Device.model_fields) - {"id"}


class DeviceStore(Protocol):
    """Async CRUD contract consumed by the reconciliation engine."""

    async def insert_home(self, home: Home) -> None: ...

    async def get_home(self, home_id: str) -> Home | None: ...

    async def list_homes(self) -> list[Home]: ...

    async def delete_home(self, home_id: str) -> bool: ...

    async def insert_room(self, room: Room) -> None: ...

    async def get_room(self, room_id: str) -> Room | None: ...

    async def list_rooms(self, home_id: str | None = None) -> list[Room]: ...

    async def delete_room(self, room_id: str) -> bool: ...

    async def insert_device(self, device: Device) -> None: ...

    async def get_device(self, device_id: str) -> Device | None: ...

    async def list_devices(self, room_id: str | None = None) -> list[Device]: ...

    async def update_device(self, device_id: str, **changes: Any) -> Device | None:
        """Apply *changes* to an existing device; ``None`` if it does not exist."""
        ...

    async def delete_device(self, device_id: str) -> bool: ...


class _Watchers:
    """Latest-wins snapshot fan-out for one table.

    Each watcher owns a queue of size one; a newer snapshot replaces an
    unread older one.
    """

    def __init__(self) -> None:
        self._queues: set[asyncio.Queue[None]] = set()

    def notify(self) -> None:
        for queue in list(self._queues):
            if queue.empty():
                queue.put_nowait(None)

    async def watch(self, snapshot: Callable[[], Awaitable[Any]]) -> AsyncGenerator[Any, None]:
        queue: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        queue.put_nowait(None)
        self._queues.add(queue)
        try:
            while True:
                await queue.get()
                yield await snapshot()
        finally:
            self._queues.discard(queue)


class InMemoryDeviceStore:
    """Dict-backed :class:`DeviceStore`.

    Deleting a home deletes its rooms; deleting a room deletes its devices.
    Insertion order is preserved in listings.
    """

    def __init__(self) -> None:
        self._homes: dict[str, Home] = {}
        self._rooms: dict[str, Room] = {}
        self._devices: dict[str, Device] = {}
        self._home_watchers = _Watchers()
        self._room_watchers = _Watchers()
        self._device_watchers = _Watchers()

    # ------------------------------------------------------------------
    # Homes
    # ------------------------------------------------------------------

    async def insert_home(self, home: Home) -> None:
        self._homes[home.id] = home
        self._home_watchers.notify()

    async def get_home(self, home_id: str) -> Home | None:
        return self._homes.get(home_id)

    async def list_homes(self) -> list[Home]:
        return list(self._homes.values())

    async def delete_home(self, home_id: str) -> bool:
        if self._homes.pop(home_id, None) is None:
            return False
        for room in [r for r in self._rooms.values() if r.home_id == home_id]:
            await self.delete_room(room.id)
        _logger.debug("Deleted home %s", home_id)
        self._home_watchers.notify()
        return True

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def insert_room(self, room: Room) -> None:
        self._rooms[room.id] = room
        self._room_watchers.notify()

    async def get_room(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    async def list_rooms(self, home_id: str | None = None) -> list[Room]:
        rooms = self._rooms.values()
        if home_id is None:
            return list(rooms)
        return [room for room in rooms if room.home_id == home_id]

    async def delete_room(self, room_id: str) -> bool:
        if self._rooms.pop(room_id, None) is None:
            return False
        doomed = [device_id for device_id, device in self._devices.items() if device.room_id == room_id]
        for device_id in doomed:
            del self._devices[device_id]
        if doomed:
            self._device_watchers.notify()
        _logger.debug("Deleted room %s with %d device(s)", room_id, len(doomed))
        self._room_watchers.notify()
        return True

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def insert_device(self, device: Device) -> None:
        self._devices[device.id] = device
        self._device_watchers.notify()

    async def get_device(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    async def list_devices(self, room_id: str | None = None) -> list[Device]:
        devices = self._devices.values()
        if room_id is None:
            return list(devices)
        return [device for device in devices if device.room_id == room_id]

    async def update_device(self, device_id: str, **changes: Any) -> Device | None:
        unknown = set(changes) - _UPDATABLE_DEVICE_FIELDS
        if unknown:
            raise ValueError(f"Unknown or read-only device field(s): {sorted(unknown)}")
        current = self._devices.get(device_id)
        if current is None:
            return None
        # model_copy skips validation; re-validate so bad values never land in the store.
        updated = Device.model_validate({**current.model_dump(), **_dump_values(changes)})
        self._devices[device_id] = updated
        self._device_watchers.notify()
        return updated

    async def delete_device(self, device_id: str) -> bool:
        if self._devices.pop(device_id, None) is None:
            return False
        self._device_watchers.notify()
        return True

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def watch_homes(self) -> AsyncGenerator[list[Home], None]:
        """Yield all homes now and again after every home mutation."""
        return self._home_watchers.watch(self.list_homes)

    def watch_rooms(self) -> AsyncGenerator[list[Room], None]:
        return self._room_watchers.watch(self.list_rooms)

    def watch_devices(self) -> AsyncGenerator[list[Device], None]:
        """Yield all devices now and again after every device mutation.

        Bursts of writes between two reads collapse into one snapshot.
        """
        return self._device_watchers.watch(self.list_devices)


def _dump_values(changes: dict[str, Any]) -> dict[str, Any]:
    return {key: value.model_dump() if isinstance(value, BaseModel) else value for key, value in changes.items()}
