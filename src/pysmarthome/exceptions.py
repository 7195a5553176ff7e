"""Custom exception hierarchy for pysmarthome."""

from __future__ import annotations


class SmartHomeError(Exception):
    """Base exception for all pysmarthome errors."""


class SmartHomeConfigError(SmartHomeError):
    """Invalid or missing configuration."""


class SmartHomeTransportError(SmartHomeError):
    """MQTT-level failure (connect, publish, subscribe).

    These never escape the gateway's public operations: the connection
    manager hands them to the reconnect scheduler and the publisher logs
    them.
    """

    def __init__(
        self,
        message: str,
        *,
        reason_code: int | None = None,
        broker: str = "",
    ) -> None:
        self.reason_code = reason_code
        self.broker = broker
        super().__init__(message)


class SmartHomeConnectionTimeout(SmartHomeTransportError):
    """The broker did not acknowledge the connection in time."""
