"""Outbound side of the gateway: domain command -> ``.../cmd`` publish."""

from __future__ import annotations

import logging

from pysmarthome._constants import QOS_COMMAND
from pysmarthome.codec import encode_command
from pysmarthome.connection import ConnectionManager
from pysmarthome.exceptions import SmartHomeTransportError
from pysmarthome.models.command import Command
from pysmarthome.topics import build_command_topic

_logger = logging.getLogger(__name__)


class CommandPublisher:
    """Publishes commands with at-least-once quality.

    Fire-and-forget: commands are never queued while disconnected and never
    retried; the device confirms later on its state topic.
    """

    def __init__(self, connection: ConnectionManager, *, base_topic: str) -> None:
        self._connection = connection
        self._base_topic = base_topic

    async def send_command(self, home_id: str, room_id: str, device_id: str, command: Command) -> None:
        if not self._connection.is_connected():
            _logger.warning("Cannot send %s to %s - not connected", command.kind, device_id)
            return

        topic = build_command_topic(home_id, room_id, device_id, base=self._base_topic)
        payload = encode_command(command)
        _logger.debug("Publishing command to %s: %s", topic, payload)
        try:
            self._connection.publish(topic, payload, qos=QOS_COMMAND, retain=False)
        except SmartHomeTransportError as exc:
            _logger.error("Command publish to %s failed: %s", topic, exc)
            return
        _logger.debug("Command published to %s", topic)
