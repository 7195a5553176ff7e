"""pysmarthome - MQTT device gateway and reconciliation engine for smart homes."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysmarthome")
except PackageNotFoundError:
    __version__ = "0+local"
from pysmarthome.config import GatewayConfig
from pysmarthome.connection import ConnectionState
from pysmarthome.exceptions import (
    SmartHomeConfigError,
    SmartHomeConnectionTimeout,
    SmartHomeError,
    SmartHomeTransportError,
)
from pysmarthome.gateway import DeviceGateway, MqttDeviceGateway
from pysmarthome.models import (
    Command,
    Device,
    DeviceState,
    DeviceType,
    Home,
    NumericValue,
    Off,
    On,
    RequestState,
    ResponseStatus,
    Room,
    SetValue,
    StateUpdate,
    StatusUpdate,
    TurnOff,
    TurnOn,
)
from pysmarthome.reconciliation import ReconciliationEngine
from pysmarthome.store import DeviceStore, InMemoryDeviceStore

__all__ = [
    "__version__",
    "Command",
    "ConnectionState",
    "Device",
    "DeviceGateway",
    "DeviceState",
    "DeviceStore",
    "DeviceType",
    "GatewayConfig",
    "Home",
    "InMemoryDeviceStore",
    "MqttDeviceGateway",
    "NumericValue",
    "Off",
    "On",
    "ReconciliationEngine",
    "RequestState",
    "ResponseStatus",
    "Room",
    "SetValue",
    "SmartHomeConfigError",
    "SmartHomeConnectionTimeout",
    "SmartHomeError",
    "SmartHomeTransportError",
    "StateUpdate",
    "StatusUpdate",
    "TurnOff",
    "TurnOn",
]
