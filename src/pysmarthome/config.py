"""Gateway configuration for pysmarthome."""

from __future__ import annotations

import dataclasses
import os
import time
from typing import Any

from pysmarthome._constants import (
    DEFAULT_BASE_TOPIC,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTTS_PORT,
    MULTI_LEVEL_WILDCARD,
    SINGLE_LEVEL_WILDCARD,
    TOPIC_SEPARATOR,
)
from pysmarthome.exceptions import SmartHomeConfigError

_TLS_SCHEMES = frozenset({"ssl", "mqtts", "tls"})
_PLAIN_SCHEMES = frozenset({"tcp", "mqtt"})


def _default_client_id() -> str:
    return f"SmartHomeApp_{int(time.time() * 1000)}"


def parse_broker_url(raw_broker: str) -> tuple[str, int, bool]:
    """Split a broker address into ``(host, port, tls)``.

    Accepts ``tcp://host:port``, ``mqtt://host``, ``ssl://host:8883``,
    ``mqtts://host`` or a bare ``host[:port]``.
    """
    value = raw_broker.strip()
    if not value:
        raise SmartHomeConfigError("Broker address is empty")

    tls = False
    if "://" in value:
        scheme, value = value.split("://", 1)
        scheme = scheme.lower()
        if scheme in _TLS_SCHEMES:
            tls = True
        elif scheme not in _PLAIN_SCHEMES:
            raise SmartHomeConfigError(f"Unsupported broker scheme: {scheme!r}")
    if "/" in value:
        value = value.split("/", 1)[0]

    host, _, maybe_port = value.rpartition(":")
    if host and maybe_port.isdigit():
        return host, int(maybe_port), tls
    if not value:
        raise SmartHomeConfigError(f"Broker address has no host: {raw_broker!r}")
    return value, DEFAULT_MQTTS_PORT if tls else DEFAULT_MQTT_PORT, tls


@dataclasses.dataclass(frozen=True)
class GatewayConfig:
    """Gateway configuration.

    Parameters
    ----------
    broker_url : str
        MQTT broker address, e.g. ``"tcp://broker.emqx.io:1883"``.
        ``ssl://`` and ``mqtts://`` enable TLS.
    client_id : str
        MQTT client identifier. Must be unique per running instance;
        defaults to a millisecond-timestamped identifier.
    username : str or None
        Optional broker username.
    password : str or None
        Optional broker password.
    base_topic : str
        First topic segment shared by every device topic.
    connection_timeout : float
        Seconds to wait for the broker to acknowledge a connection.
    keepalive : int
        MQTT keep-alive interval in seconds.
    initial_reconnect_delay : float
        First delay (seconds) of the exponential reconnect backoff.
    max_reconnect_delay : float
        Upper bound (seconds) of the reconnect backoff.
    event_buffer_size : int
        Pending inbound events buffered per observer before the oldest
        is dropped.
    """

    broker_url: str
    client_id: str = dataclasses.field(default_factory=_default_client_id)
    username: str | None = None
    password: str | None = None
    base_topic: str = DEFAULT_BASE_TOPIC
    connection_timeout: float = 30.0
    keepalive: int = 60
    initial_reconnect_delay: float = 1.0
    max_reconnect_delay: float = 60.0
    event_buffer_size: int = 100

    def __post_init__(self) -> None:
        parse_broker_url(self.broker_url)
        if not self.client_id.strip():
            raise SmartHomeConfigError("client_id must be non-empty")
        base = self.base_topic
        if not base or any(ch in base for ch in (TOPIC_SEPARATOR, SINGLE_LEVEL_WILDCARD, MULTI_LEVEL_WILDCARD)):
            raise SmartHomeConfigError(f"Invalid base_topic: {base!r}")
        if self.connection_timeout <= 0:
            raise SmartHomeConfigError("connection_timeout must be positive")
        if self.keepalive <= 0:
            raise SmartHomeConfigError("keepalive must be positive")
        if self.initial_reconnect_delay <= 0:
            raise SmartHomeConfigError("initial_reconnect_delay must be positive")
        if self.max_reconnect_delay < self.initial_reconnect_delay:
            raise SmartHomeConfigError("max_reconnect_delay must be >= initial_reconnect_delay")
        if self.event_buffer_size <= 0:
            raise SmartHomeConfigError("event_buffer_size must be positive")

    @property
    def broker(self) -> tuple[str, int, bool]:
        """Parsed ``(host, port, tls)`` of :attr:`broker_url`."""
        return parse_broker_url(self.broker_url)

    @classmethod
    def from_env(cls, **overrides: Any) -> GatewayConfig:
        """Create configuration from environment variables.

        Reads ``SMARTHOME_BROKER_URL`` and optional ``SMARTHOME_*``
        variables. Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        GatewayConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SMARTHOME_BROKER_URL": "broker_url",
            "SMARTHOME_CLIENT_ID": "client_id",
            "SMARTHOME_USERNAME": "username",
            "SMARTHOME_PASSWORD": "password",
            "SMARTHOME_BASE_TOPIC": "base_topic",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields are converted separately
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "SMARTHOME_CONNECTION_TIMEOUT": ("connection_timeout", float),
            "SMARTHOME_KEEPALIVE": ("keepalive", int),
            "SMARTHOME_MAX_RECONNECT_DELAY": ("max_reconnect_delay", float),
            "SMARTHOME_EVENT_BUFFER_SIZE": ("event_buffer_size", int),
        }
        for env_key, (field_name, convert) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise SmartHomeConfigError(f"{env_key} is not a valid number: {val!r}") from exc

        config_kwargs.update(overrides)

        if "broker_url" not in config_kwargs:
            raise SmartHomeConfigError("SMARTHOME_BROKER_URL is not set")

        return cls(**config_kwargs)
