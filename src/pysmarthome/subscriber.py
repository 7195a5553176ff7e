"""Inbound side of the gateway.

Owns:
- the subscription registry (wildcards subscribed in the current session)
- decoding of ``.../state`` and ``.../status`` messages
- fan-out of decoded events to per-device async streams
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from pysmarthome._constants import QOS_STATE, QOS_STATUS
from pysmarthome._mqtt import MqttTransport
from pysmarthome._redact import redact_for_log
from pysmarthome.codec import decode_state, decode_status
from pysmarthome.exceptions import SmartHomeTransportError
from pysmarthome.models.updates import StateUpdate, StatusUpdate
from pysmarthome.topics import TopicSuffix, build_state_wildcard, build_status_wildcard, parse_device_id, parse_suffix

_logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class SubscriptionRegistry:
    """Thread-safe set of wildcard patterns subscribed in the current session.

    Touched from the asyncio loop (setup, disconnect) and, through
    subscribe-failure callbacks, on behalf of the MQTT network thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._patterns: set[str] = set()

    def add(self, pattern: str) -> bool:
        """Record *pattern*; ``False`` if it was already present."""
        with self._lock:
            if pattern in self._patterns:
                return False
            self._patterns.add(pattern)
            return True

    def discard(self, pattern: str) -> None:
        with self._lock:
            self._patterns.discard(pattern)

    def clear(self) -> None:
        with self._lock:
            self._patterns.clear()

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._patterns)

    def __contains__(self, pattern: object) -> bool:
        with self._lock:
            return pattern in self._patterns

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)


class EventBroadcaster(Generic[T]):
    """Hot broadcast of events keyed by device id.

    No replay: an observer only sees events emitted after it attached.
    Every observer has its own bounded queue; when it is full the oldest
    pending event is dropped so :meth:`emit` never blocks.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._queues: dict[str, set[asyncio.Queue[T]]] = {}
        self.dropped = 0

    def observer_count(self, key: str) -> int:
        return len(self._queues.get(key, ()))

    def emit(self, key: str, item: T) -> None:
        for queue in list(self._queues.get(key, ())):
            if queue.full():
                queue.get_nowait()
                self.dropped += 1
                _logger.debug("Observer queue for %s full, dropped oldest event", key)
            queue.put_nowait(item)

    def stream(self, key: str) -> EventStream[T]:
        """Attach a new observer for *key* right away and return its stream."""
        queue: asyncio.Queue[T] = asyncio.Queue(maxsize=self._capacity)
        self._queues.setdefault(key, set()).add(queue)
        return EventStream(queue, detach=lambda: self._detach(key, queue))

    def _detach(self, key: str, queue: asyncio.Queue[T]) -> None:
        queues = self._queues.get(key)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            self._queues.pop(key, None)


class EventStream(Generic[T]):
    """Async iterator over one observer's queue.

    Detaches from the broadcaster on :meth:`aclose`, on ``async with`` exit,
    or when the task waiting on it is cancelled.
    """

    def __init__(self, queue: asyncio.Queue[T], *, detach: Callable[[], None]) -> None:
        self._queue: asyncio.Queue[Any] = queue
        self._detach = detach
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> EventStream[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration
        try:
            item = await self._queue.get()
        except asyncio.CancelledError:
            self.close()
            raise
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._detach()
            # Wakes a consumer already parked in __anext__.
            if self._queue.full():
                self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> EventStream[T]:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.close()


class EventSubscriber:
    """Subscribes to the state/status wildcards and demultiplexes messages."""

    def __init__(
        self,
        *,
        registry: SubscriptionRegistry,
        base_topic: str,
        buffer_size: int = 100,
    ) -> None:
        self._registry = registry
        self._state_wildcard = build_state_wildcard(base=base_topic)
        self._status_wildcard = build_status_wildcard(base=base_topic)
        self._states: EventBroadcaster[StateUpdate] = EventBroadcaster(buffer_size)
        self._statuses: EventBroadcaster[StatusUpdate] = EventBroadcaster(buffer_size)

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def states(self) -> EventBroadcaster[StateUpdate]:
        return self._states

    @property
    def statuses(self) -> EventBroadcaster[StatusUpdate]:
        return self._statuses

    def setup_subscriptions(self, transport: MqttTransport) -> None:
        """Subscribe each wildcard at most once per session."""
        for pattern, qos in ((self._state_wildcard, QOS_STATE), (self._status_wildcard, QOS_STATUS)):
            if not self._registry.add(pattern):
                _logger.debug("Already subscribed to %s", pattern)
                continue
            try:
                transport.subscribe(pattern, qos=qos)
            except SmartHomeTransportError as exc:
                _logger.error("Subscribe to %s failed: %s", pattern, exc)
                self._registry.discard(pattern)
                continue
            _logger.info("Subscribed to %s", pattern)

    def subscription_failed(self, pattern: str) -> None:
        """Broker rejected a subscription; forget it so the next session retries."""
        _logger.error("Broker rejected subscription to %s", pattern)
        self._registry.discard(pattern)

    def handle_message(self, topic: str, payload: bytes) -> None:
        """Decode one inbound message and emit it; anything unusable is dropped."""
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("Message arrived on %s: %s", topic, redact_for_log(payload))
        suffix = parse_suffix(topic)
        device_id = parse_device_id(topic)
        if suffix is None or device_id is None:
            _logger.debug("Dropping message on unroutable topic %s", topic)
            return

        try:
            if suffix is TopicSuffix.STATE:
                state_payload = decode_state(payload)
                if state_payload is None:
                    return
                update = StateUpdate(device_id=device_id, state=state_payload.to_state(), message=state_payload.msg)
                self._states.emit(device_id, update)
            elif suffix is TopicSuffix.STATUS:
                status_payload = decode_status(payload)
                if status_payload is None:
                    return
                self._statuses.emit(device_id, StatusUpdate(device_id=device_id, online=status_payload.online))
            else:
                _logger.debug("Ignoring %s message on %s", suffix, topic)
        except ValidationError:
            _logger.debug("Dropping message with invalid device id on %s", topic, exc_info=True)

    def observe_device_state(self, device_id: str) -> EventStream[StateUpdate]:
        return self._states.stream(device_id)

    def observe_device_status(self, device_id: str) -> EventStream[StatusUpdate]:
        return self._statuses.stream(device_id)
