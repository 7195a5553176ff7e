"""Domain models for homes, rooms, devices, commands and device events."""

from pysmarthome.models._base import Identifier, SmartHomeModel, WireModel, new_identifier, validate_identifier
from pysmarthome.models.command import Command, RequestState, SetValue, TurnOff, TurnOn
from pysmarthome.models.device import Device, DeviceState, DeviceType, NumericValue, Off, On, ResponseStatus
from pysmarthome.models.home import Home, Room
from pysmarthome.models.updates import StateUpdate, StatusUpdate

__all__ = [
    "Command",
    "Device",
    "DeviceState",
    "DeviceType",
    "Home",
    "Identifier",
    "NumericValue",
    "Off",
    "On",
    "RequestState",
    "ResponseStatus",
    "Room",
    "SetValue",
    "SmartHomeModel",
    "StateUpdate",
    "StatusUpdate",
    "TurnOff",
    "TurnOn",
    "WireModel",
    "new_identifier",
    "validate_identifier",
]
