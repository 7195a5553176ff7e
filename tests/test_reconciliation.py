from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pysmarthome.gateway import MqttDeviceGateway
from pysmarthome.models import Device, DeviceType, NumericValue, Off, On, ResponseStatus
from pysmarthome.reconciliation import ReconciliationEngine, toggled
from pysmarthome.store import InMemoryDeviceStore


class _RecordingStore(InMemoryDeviceStore):
    def __init__(self) -> None:
        super().__init__()
        self.updates: list[tuple[str, dict[str, Any]]] = []
        # Deleted by a concurrent writer just before the next update lands.
        self.vanishing: set[str] = set()

    async def update_device(self, device_id: str, **changes: Any) -> Device | None:
        self.updates.append((device_id, changes))
        if device_id in self.vanishing:
            await self.delete_device(device_id)
        return await super().update_device(device_id, **changes)


class _Env:
    def __init__(self, config, transport, sleep) -> None:
        self.transport = transport
        self.store = _RecordingStore()
        self.gateway = MqttDeviceGateway(config, transport=transport, reconnect_sleep=sleep)
        self.engine = ReconciliationEngine(self.store, self.gateway)

    async def device(self, device_type: DeviceType = DeviceType.BULB) -> tuple[str, str, Device]:
        home = await self.engine.add_home("Flat")
        room = await self.engine.add_room(home.id, "Kitchen")
        assert room is not None
        device = await self.engine.add_device(room.id, "Ceiling", device_type)
        assert device is not None
        return home.id, room.id, device

    def state_topic(self, home_id: str, room_id: str, device_id: str) -> str:
        return f"smarthome/{home_id}/{room_id}/{device_id}/state"


@pytest.fixture
def env(config, transport, sleep) -> _Env:
    return _Env(config, transport, sleep)


def test_toggle_targets() -> None:
    assert toggled(Off())[0] == On()
    assert toggled(On())[0] == Off()
    assert toggled(NumericValue(value=40))[0] == Off()


@pytest.mark.asyncio
async def test_toggle_is_optimistic_then_confirmed(env: _Env, wait_until) -> None:
    await env.engine.start()
    home_id, room_id, device = await env.device()
    env.transport.published.clear()

    await env.engine.toggle_device(device.id)

    stored = await env.store.get_device(device.id)
    assert stored is not None
    assert stored.state == On()
    assert stored.response_status is ResponseStatus.WAITING
    assert stored.response_message == "Waiting for device response..."
    assert env.transport.published == [(f"smarthome/{home_id}/{room_id}/{device.id}/cmd", '{"action":"ON"}', 1, False)]

    env.transport.deliver(env.state_topic(home_id, room_id, device.id), '{"isOn": true, "msg": "done"}')

    await wait_until(lambda: env.store.updates[-1][1].get("response_status") is ResponseStatus.CONFIRMED)
    stored = await env.store.get_device(device.id)
    assert stored is not None
    assert stored.state == On()
    assert stored.response_status is ResponseStatus.CONFIRMED
    assert stored.response_message == "done"
    await env.engine.stop()


@pytest.mark.asyncio
async def test_confirmation_without_message_uses_default(env: _Env, wait_until) -> None:
    await env.engine.start()
    home_id, room_id, device = await env.device()

    env.transport.deliver(env.state_topic(home_id, room_id, device.id), '{"value": 55}')
    await wait_until(lambda: len(env.store.updates) == 1)

    stored = await env.store.get_device(device.id)
    assert stored is not None
    assert stored.state == NumericValue(value=55)
    assert stored.response_message == "State updated"
    assert stored.response_status is ResponseStatus.CONFIRMED
    await env.engine.stop()


@pytest.mark.asyncio
async def test_status_updates_only_online_flag(env: _Env, wait_until) -> None:
    await env.engine.start()
    home_id, room_id, device = await env.device()
    await env.engine.toggle_device(device.id)

    env.transport.deliver(f"smarthome/{home_id}/{room_id}/{device.id}/status", '{"online": false}')
    await wait_until(lambda: len(env.store.updates) == 2)

    stored = await env.store.get_device(device.id)
    assert stored is not None
    assert stored.is_online is False
    assert stored.response_status is ResponseStatus.WAITING
    await env.engine.stop()


@pytest.mark.asyncio
async def test_device_added_after_start_receives_updates(env: _Env, wait_until) -> None:
    await env.engine.start()
    home_id, room_id, device = await env.device(DeviceType.FAN)

    assert env.engine.is_attached(device.id)
    # a connected gateway asks the new device for its state
    assert env.transport.published[-1] == (
        f"smarthome/{home_id}/{room_id}/{device.id}/cmd",
        '{"action":"REQUEST_STATE"}',
        1,
        False,
    )

    env.transport.deliver(env.state_topic(home_id, room_id, device.id), '{"isOn": true}')
    await wait_until(lambda: len(env.store.updates) == 1)
    await env.engine.stop()


@pytest.mark.asyncio
async def test_existing_devices_are_attached_on_start(env: _Env) -> None:
    _, _, device = await env.device()
    assert env.engine.is_attached(device.id)
    await env.engine.stop()
    assert not env.engine.is_attached(device.id)

    await env.engine.start()
    assert env.engine.is_attached(device.id)
    await env.engine.stop()


@pytest.mark.asyncio
async def test_removed_device_gets_no_late_writes(env: _Env) -> None:
    await env.engine.start()
    home_id, room_id, device = await env.device()

    assert await env.engine.remove_device(device.id) is True
    assert not env.engine.is_attached(device.id)

    env.transport.deliver(env.state_topic(home_id, room_id, device.id), '{"isOn": true, "msg": "late"}')
    env.transport.deliver(f"smarthome/{home_id}/{room_id}/{device.id}/status", '{"online": true}')
    await asyncio.sleep(0.05)

    assert env.store.updates == []
    assert await env.store.get_device(device.id) is None
    await env.engine.stop()


@pytest.mark.asyncio
async def test_send_while_disconnected_keeps_optimistic_write(env: _Env) -> None:
    _, _, device = await env.device()

    await env.engine.set_device_value(device.id, 30)

    assert env.transport.published == []
    stored = await env.store.get_device(device.id)
    assert stored is not None
    assert stored.state == NumericValue(value=30)
    assert stored.response_status is ResponseStatus.WAITING
    await env.engine.stop()


@pytest.mark.asyncio
async def test_numeric_device_toggles_off(env: _Env) -> None:
    await env.engine.start()
    _, _, device = await env.device(DeviceType.AC)
    await env.engine.set_device_value(device.id, 21)

    await env.engine.toggle_device(device.id)

    stored = await env.store.get_device(device.id)
    assert stored is not None
    assert stored.state == Off()
    assert env.transport.published[-1][1] == '{"action":"OFF"}'
    await env.engine.stop()


@pytest.mark.asyncio
async def test_read_only_and_valueless_devices_reject_commands(env: _Env) -> None:
    await env.engine.start()
    _, _, sensor = await env.device(DeviceType.SENSOR)
    home = (await env.store.list_homes())[0]
    room = (await env.store.list_rooms(home.id))[0]
    socket = await env.engine.add_device(room.id, "Kettle", DeviceType.SOCKET)
    assert socket is not None
    published = len(env.transport.published)

    assert await env.engine.toggle_device(sensor.id) is None
    assert await env.engine.set_device_value(sensor.id, 1) is None
    assert await env.engine.set_device_value(socket.id, 1) is None
    assert env.store.updates == []
    assert len(env.transport.published) == published

    await env.engine.request_device_state(sensor.id)
    assert env.transport.published[-1][1] == '{"action":"REQUEST_STATE"}'
    await env.engine.stop()


@pytest.mark.asyncio
async def test_clear_response_returns_to_idle(env: _Env, wait_until) -> None:
    await env.engine.start()
    home_id, room_id, device = await env.device()
    await env.engine.toggle_device(device.id)

    # WAITING is left alone
    await env.engine.clear_response(device.id)
    assert await env.engine.response_status(device.id) is ResponseStatus.WAITING

    env.transport.deliver(env.state_topic(home_id, room_id, device.id), '{"isOn": true}')
    await wait_until(lambda: len(env.store.updates) == 2)
    assert await env.engine.response_status(device.id) is ResponseStatus.CONFIRMED

    cleared = await env.engine.clear_response(device.id)
    assert cleared is not None
    assert cleared.response_status is ResponseStatus.IDLE
    assert cleared.response_message is None
    assert await env.engine.response_status("missing") is None
    await env.engine.stop()


@pytest.mark.asyncio
async def test_remove_home_detaches_cascaded_devices(env: _Env) -> None:
    home_id, _, device = await env.device()

    assert await env.engine.remove_home(home_id) is True

    assert not env.engine.is_attached(device.id)
    assert await env.store.get_device(device.id) is None
    await env.engine.stop()


@pytest.mark.asyncio
async def test_rename_and_move(env: _Env) -> None:
    home_id, _, device = await env.device()
    hall = await env.engine.add_room(home_id, "Hall")
    assert hall is not None

    renamed = await env.engine.rename_device(device.id, "Pendant")
    assert renamed is not None
    assert renamed.name == "Pendant"

    moved = await env.engine.move_device_to_room(device.id, hall.id)
    assert moved is not None
    assert moved.room_id == hall.id
    assert await env.engine.move_device_to_room(device.id, "missing") is None
    assert await env.engine.add_room("missing", "Attic") is None
    assert await env.engine.add_device("missing", "Lamp", DeviceType.BULB) is None
    await env.engine.stop()


@pytest.mark.asyncio
async def test_command_for_device_deleted_mid_write_is_not_sent(env: _Env) -> None:
    await env.engine.start()
    _, _, device = await env.device()
    env.transport.published.clear()
    env.store.vanishing.add(device.id)

    assert await env.engine.toggle_device(device.id) is None

    assert env.transport.published == []
    assert await env.store.get_device(device.id) is None
    await env.engine.stop()
