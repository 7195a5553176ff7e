"""MQTT topic addressing.

Every device topic follows::

    {base}/{home_id}/{room_id}/{device_id}/{suffix}

with ``suffix`` one of ``cmd`` (app → device), ``state`` (device → app)
or ``status`` (device → app, online/offline and last will).

Example::

    smarthome/home-123/room-456/device-789/state

All functions are pure. Identifiers are opaque: the only assumption is that
they hold no ``/`` (and no MQTT wildcard character).
"""

from __future__ import annotations

import enum

from pysmarthome._constants import (
    APP_STATUS_SEGMENT,
    DEFAULT_BASE_TOPIC,
    MULTI_LEVEL_WILDCARD,
    SINGLE_LEVEL_WILDCARD,
    TOPIC_SEPARATOR,
)


class TopicSuffix(enum.StrEnum):
    CMD = "cmd"
    STATE = "state"
    STATUS = "status"


# Segment positions in a device topic.
_HOME_INDEX = 1
_ROOM_INDEX = 2
_DEVICE_INDEX = 3
_SUFFIX_INDEX = 4


def _check_segment(name: str, value: str) -> str:
    if not value:
        raise ValueError(f"{name} must be non-empty")
    for ch in (TOPIC_SEPARATOR, SINGLE_LEVEL_WILDCARD, MULTI_LEVEL_WILDCARD):
        if ch in value:
            raise ValueError(f"{name} must not contain {ch!r}: {value!r}")
    return value


def _build(base: str, home_id: str, room_id: str, device_id: str, suffix: TopicSuffix) -> str:
    segments = (
        _check_segment("base", base),
        _check_segment("home_id", home_id),
        _check_segment("room_id", room_id),
        _check_segment("device_id", device_id),
        suffix.value,
    )
    return TOPIC_SEPARATOR.join(segments)


def build_command_topic(home_id: str, room_id: str, device_id: str, *, base: str = DEFAULT_BASE_TOPIC) -> str:
    """Topic the app publishes commands on."""
    return _build(base, home_id, room_id, device_id, TopicSuffix.CMD)


def build_state_topic(home_id: str, room_id: str, device_id: str, *, base: str = DEFAULT_BASE_TOPIC) -> str:
    """Topic a device reports its state on."""
    return _build(base, home_id, room_id, device_id, TopicSuffix.STATE)


def build_status_topic(home_id: str, room_id: str, device_id: str, *, base: str = DEFAULT_BASE_TOPIC) -> str:
    """Topic a device reports online/offline on."""
    return _build(base, home_id, room_id, device_id, TopicSuffix.STATUS)


def _wildcard(base: str, suffix: TopicSuffix) -> str:
    _check_segment("base", base)
    return TOPIC_SEPARATOR.join((base, SINGLE_LEVEL_WILDCARD, SINGLE_LEVEL_WILDCARD, SINGLE_LEVEL_WILDCARD, suffix))


def build_state_wildcard(*, base: str = DEFAULT_BASE_TOPIC) -> str:
    """Pattern matching the state topic of every home/room/device."""
    return _wildcard(base, TopicSuffix.STATE)


def build_status_wildcard(*, base: str = DEFAULT_BASE_TOPIC) -> str:
    """Pattern matching the status topic of every home/room/device."""
    return _wildcard(base, TopicSuffix.STATUS)


def build_app_status_topic(*, base: str = DEFAULT_BASE_TOPIC) -> str:
    """Application-level status topic carrying the last will."""
    _check_segment("base", base)
    return TOPIC_SEPARATOR.join((base, APP_STATUS_SEGMENT, TopicSuffix.STATUS))


def _segment(topic: str, index: int) -> str | None:
    parts = topic.split(TOPIC_SEPARATOR)
    if len(parts) <= index:
        return None
    return parts[index] or None


def parse_home_id(topic: str) -> str | None:
    """``"smarthome/home-1/room-2/device-3/state"`` → ``"home-1"``."""
    return _segment(topic, _HOME_INDEX)


def parse_room_id(topic: str) -> str | None:
    """``"smarthome/home-1/room-2/device-3/state"`` → ``"room-2"``."""
    return _segment(topic, _ROOM_INDEX)


def parse_device_id(topic: str) -> str | None:
    """``"smarthome/home-1/room-2/device-3/state"`` → ``"device-3"``."""
    return _segment(topic, _DEVICE_INDEX)


def parse_suffix(topic: str) -> TopicSuffix | None:
    """Suffix of a full device topic, ``None`` for short or unknown topics."""
    parts = topic.split(TOPIC_SEPARATOR)
    if len(parts) <= _SUFFIX_INDEX:
        return None
    try:
        return TopicSuffix(parts[-1])
    except ValueError:
        return None
