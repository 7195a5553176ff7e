"""Device records, device types and the device state variant."""

from __future__ import annotations

import enum
from typing import Annotated, Literal

from pydantic import Field

from pysmarthome.models._base import Identifier, SmartHomeModel, new_identifier

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class DeviceType(enum.StrEnum):
    """Kinds of device a room can hold."""

    BULB = "BULB"
    FAN = "FAN"
    SOCKET = "SOCKET"
    AC = "AC"
    SENSOR = "SENSOR"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def is_read_only(self) -> bool:
        """Sensors only report; they accept no commands besides state requests."""
        return self is DeviceType.SENSOR

    @property
    def accepts_value(self) -> bool:
        """Whether ``SetValue`` makes sense (dimmers, fan speed, AC setpoint)."""
        return self in (DeviceType.BULB, DeviceType.FAN, DeviceType.AC)


_DISPLAY_NAMES: dict[DeviceType, str] = {
    DeviceType.BULB: "Smart Bulb",
    DeviceType.FAN: "Smart Fan",
    DeviceType.SOCKET: "Smart Socket",
    DeviceType.AC: "Smart AC",
    DeviceType.SENSOR: "Sensor",
}


class ResponseStatus(enum.StrEnum):
    """Command confirmation cycle of a device.

    IDLE - no pending command
    WAITING - command sent, waiting for the hardware to report back
    CONFIRMED - the device reported its state after a command
    """

    IDLE = "IDLE"
    WAITING = "WAITING"
    CONFIRMED = "CONFIRMED"


# ------------------------------------------------------------------
# Device state variant
# ------------------------------------------------------------------


class Off(SmartHomeModel):
    kind: Literal["off"] = "off"


class On(SmartHomeModel):
    kind: Literal["on"] = "on"


class NumericValue(SmartHomeModel):
    """A numeric reading or setpoint (dimmer level, temperature, ...)."""

    kind: Literal["value"] = "value"
    value: float


DeviceState = Annotated[Off | On | NumericValue, Field(discriminator="kind")]


# ------------------------------------------------------------------
# Device record
# ------------------------------------------------------------------


class Device(SmartHomeModel):
    """A device as recorded in the store."""

    id: Identifier = Field(default_factory=new_identifier)
    name: str
    type: DeviceType
    room_id: Identifier
    state: DeviceState = Field(default_factory=Off)
    is_online: bool = True
    response_message: str | None = None
    response_status: ResponseStatus = ResponseStatus.IDLE
