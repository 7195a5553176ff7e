"""JSON payload codec for the three MQTT message shapes.

Wire contract (shared with device firmware)::

    cmd     {"action": "ON"|"OFF"|"SET_VALUE"|"REQUEST_STATE", "value"?: number}
    state   {"isOn"?: bool, "value"?: number, "msg"?: string}
    status  {"online": bool}

Encoders are total and emit fields in the order above, omitting absent
ones. Decoders are partial: malformed text, non-object JSON, wrong field
types or missing required structure yield ``None``. They never raise.
"""

from __future__ import annotations

import enum
import logging
from typing import TypeVar, assert_never

from pydantic import ValidationError, model_validator

from pysmarthome.models._base import WireModel
from pysmarthome.models.command import Command, RequestState, SetValue, TurnOff, TurnOn
from pysmarthome.models.device import DeviceState, NumericValue, Off, On

_logger = logging.getLogger(__name__)

_PayloadT = TypeVar("_PayloadT", bound=WireModel)


class CommandAction(enum.StrEnum):
    ON = "ON"
    OFF = "OFF"
    SET_VALUE = "SET_VALUE"
    REQUEST_STATE = "REQUEST_STATE"


# ------------------------------------------------------------------
# Wire models
# ------------------------------------------------------------------


class CommandPayload(WireModel):
    """Payload published on ``.../cmd``."""

    action: CommandAction
    value: float | None = None

    @model_validator(mode="after")
    def _value_required_for_set(self) -> CommandPayload:
        if self.action is CommandAction.SET_VALUE and self.value is None:
            raise ValueError("SET_VALUE requires a value")
        return self

    def to_command(self) -> Command:
        if self.action is CommandAction.ON:
            return TurnOn()
        if self.action is CommandAction.OFF:
            return TurnOff()
        if self.action is CommandAction.SET_VALUE:
            assert self.value is not None  # noqa: S101
            return SetValue(value=self.value)
        if self.action is CommandAction.REQUEST_STATE:
            return RequestState()
        assert_never(self.action)


class StatePayload(WireModel):
    """Payload received on ``.../state``.

    ``isOn`` takes precedence over ``value``; a payload carrying neither is
    rejected.
    """

    is_on: bool | None = None
    value: float | None = None
    msg: str | None = None

    @model_validator(mode="after")
    def _require_state(self) -> StatePayload:
        if self.is_on is None and self.value is None:
            raise ValueError("state payload has neither isOn nor value")
        return self

    def to_state(self) -> DeviceState:
        if self.is_on is not None:
            return On() if self.is_on else Off()
        assert self.value is not None  # noqa: S101
        return NumericValue(value=self.value)


class StatusPayload(WireModel):
    """Payload received on ``.../status`` (also the app's last will)."""

    online: bool


# ------------------------------------------------------------------
# Domain <-> wire
# ------------------------------------------------------------------


def command_to_payload(command: Command) -> CommandPayload:
    if isinstance(command, TurnOn):
        return CommandPayload(action=CommandAction.ON)
    if isinstance(command, TurnOff):
        return CommandPayload(action=CommandAction.OFF)
    if isinstance(command, SetValue):
        return CommandPayload(action=CommandAction.SET_VALUE, value=command.value)
    if isinstance(command, RequestState):
        return CommandPayload(action=CommandAction.REQUEST_STATE)
    assert_never(command)


def state_to_payload(state: DeviceState, msg: str | None = None) -> StatePayload:
    if isinstance(state, On):
        return StatePayload(is_on=True, msg=msg)
    if isinstance(state, Off):
        return StatePayload(is_on=False, msg=msg)
    if isinstance(state, NumericValue):
        return StatePayload(value=state.value, msg=msg)
    assert_never(state)


# ------------------------------------------------------------------
# Encode
# ------------------------------------------------------------------


def _dump(payload: WireModel) -> str:
    return payload.model_dump_json(by_alias=True, exclude_none=True)


def encode_command(command: Command) -> str:
    """Serialise a domain command, e.g. ``{"action":"SET_VALUE","value":75.0}``."""
    return _dump(command_to_payload(command))


def encode_state(state: DeviceState, msg: str | None = None) -> str:
    return _dump(state_to_payload(state, msg))


def encode_status(online: bool) -> str:
    return _dump(StatusPayload(online=online))


# ------------------------------------------------------------------
# Decode
# ------------------------------------------------------------------


def _as_text(raw: str | bytes | bytearray) -> str | None:
    if isinstance(raw, str):
        return raw
    try:
        return bytes(raw).decode("utf-8")
    except UnicodeDecodeError:
        _logger.debug("Payload is not valid UTF-8 (%d bytes)", len(raw))
        return None


def _decode(model: type[_PayloadT], raw: str | bytes | bytearray) -> _PayloadT | None:
    text = _as_text(raw)
    if text is None:
        return None
    try:
        return model.model_validate_json(text)
    except ValidationError as exc:
        _logger.debug("Rejected %s payload %r: %s", model.__name__, text[:128], exc.errors(include_url=False))
        return None


def decode_command(raw: str | bytes | bytearray) -> CommandPayload | None:
    return _decode(CommandPayload, raw)


def decode_state(raw: str | bytes | bytearray) -> StatePayload | None:
    """Decode a state payload; ``None`` when it is malformed or carries no state."""
    return _decode(StatePayload, raw)


def decode_status(raw: str | bytes | bytearray) -> StatusPayload | None:
    return _decode(StatusPayload, raw)
