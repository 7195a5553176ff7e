"""Commands that can be sent to a physical device.

Commands are constructed per call and never persisted. The variant is
closed: every consumer dispatches over exactly these four classes.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field

from pysmarthome.models._base import SmartHomeModel


class TurnOn(SmartHomeModel):
    kind: Literal["turn_on"] = "turn_on"


class TurnOff(SmartHomeModel):
    kind: Literal["turn_off"] = "turn_off"


class SetValue(SmartHomeModel):
    """Set a device value (dimmer level, fan speed, thermostat setpoint)."""

    kind: Literal["set_value"] = "set_value"
    value: float


class RequestState(SmartHomeModel):
    """Ask the device to publish its current state."""

    kind: Literal["request_state"] = "request_state"


Command = Annotated[TurnOn | TurnOff | SetValue | RequestState, Field(discriminator="kind")]
