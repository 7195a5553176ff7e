from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from pysmarthome._mqtt import LastWill, TransportHandlers
from pysmarthome.config import GatewayConfig
from pysmarthome.exceptions import SmartHomeTransportError


@dataclass
class FakeTransport:
    """In-memory stand-in for the paho runtime."""

    fail_starts: int = 0
    fail_publish: bool = False
    starts: int = 0
    stops: int = 0
    connected: bool = False
    will: LastWill | None = None
    handlers: TransportHandlers | None = None
    published: list[tuple[str, str, int, bool]] = field(default_factory=list)
    subscribed: list[tuple[str, int]] = field(default_factory=list)

    def start(self, will: LastWill, handlers: TransportHandlers) -> None:
        self.starts += 1
        self.will = will
        self.handlers = handlers
        if self.fail_starts > 0:
            self.fail_starts -= 1
            raise SmartHomeTransportError("connection refused", broker="localhost:1883")
        self.connected = True

    def stop(self) -> None:
        self.stops += 1
        self.connected = False

    def is_connected(self) -> bool:
        return self.connected

    def publish(self, topic: str, payload: str, *, qos: int, retain: bool) -> None:
        if self.fail_publish:
            raise SmartHomeTransportError(f"Publish to {topic} failed")
        self.published.append((topic, payload, qos, retain))

    def subscribe(self, topic: str, *, qos: int) -> None:
        self.subscribed.append((topic, qos))

    def deliver(self, topic: str, payload: str | bytes) -> None:
        assert self.handlers is not None
        self.handlers.on_message(topic, payload.encode() if isinstance(payload, str) else payload)

    def drop(self, reason: str = "keepalive timeout") -> None:
        assert self.handlers is not None
        self.connected = False
        self.handlers.on_connection_lost(reason)


class SleepRecorder:
    """Reconnect sleep that records delays and yields instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def config() -> GatewayConfig:
    return GatewayConfig(broker_url="tcp://localhost:1883", client_id="SmartHomeApp_test")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def wait_until() -> Callable[..., object]:
    return _wait_until
