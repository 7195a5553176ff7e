from __future__ import annotations

import json

import pytest

from pysmarthome.codec import (
    CommandAction,
    decode_command,
    decode_state,
    decode_status,
    encode_command,
    encode_state,
    encode_status,
)
from pysmarthome.models import NumericValue, Off, On, RequestState, SetValue, TurnOff, TurnOn


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"isOn": true}', On()),
        ('{"isOn": false}', Off()),
        ('{"value": 22.5}', NumericValue(value=22.5)),
        ('{"isOn": true, "value": 5}', On()),
        ('{"isOn": false, "value": 5, "firmware": "1.2"}', Off()),
    ],
)
def test_decode_state_precedence(raw: str, expected: object) -> None:
    payload = decode_state(raw)
    assert payload is not None
    assert payload.to_state() == expected


@pytest.mark.parametrize(
    "raw",
    ["{}", '{"msg": "hello"}', "not json", "[1, 2]", "null", '{"isOn": "maybe"}', b"\xff\xfe"],
)
def test_decode_state_rejects_without_raising(raw: str | bytes) -> None:
    assert decode_state(raw) is None


def test_decode_state_keeps_message() -> None:
    payload = decode_state(b'{"isOn": true, "msg": "done"}')
    assert payload is not None
    assert payload.msg == "done"


def test_decode_status() -> None:
    status = decode_status(b'{"online": false}')
    assert status is not None
    assert status.online is False
    assert decode_status("{}") is None


def test_decode_command() -> None:
    payload = decode_command('{"action": "SET_VALUE", "value": 40}')
    assert payload is not None
    assert payload.action is CommandAction.SET_VALUE
    assert payload.to_command() == SetValue(value=40)
    # value is required only for SET_VALUE
    assert decode_command('{"action": "SET_VALUE"}') is None
    on = decode_command('{"action": "ON", "value": 3}')
    assert on is not None
    assert on.to_command() == TurnOn()
    assert decode_command('{"action": "BLINK"}') is None


def test_encode_command_is_canonical() -> None:
    assert encode_command(TurnOn()) == '{"action":"ON"}'
    assert encode_command(TurnOff()) == '{"action":"OFF"}'
    assert encode_command(RequestState()) == '{"action":"REQUEST_STATE"}'
    assert json.loads(encode_command(SetValue(value=75))) == {"action": "SET_VALUE", "value": 75.0}
    assert list(json.loads(encode_command(SetValue(value=1))).keys()) == ["action", "value"]


def test_encode_state_and_status() -> None:
    assert encode_state(On()) == '{"isOn":true}'
    assert encode_state(NumericValue(value=21.0), "ok") == '{"value":21.0,"msg":"ok"}'
    assert encode_status(False) == '{"online":false}'
