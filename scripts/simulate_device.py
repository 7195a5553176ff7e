#!/usr/bin/env python3
"""Simulated smart-home device for exercising the gateway without hardware.

The device:
1) connects to the broker with a last will of ``{"online": false}`` on its status topic,
2) publishes ``{"online": true}`` (retained) once connected,
3) subscribes to its ``cmd`` topic,
4) answers every command with a ``state`` message, optionally after a delay.

Example::

    SMARTHOME_BROKER_URL=tcp://localhost:1883 \\
        python scripts/simulate_device.py --home home-1 --room room-1 --device lamp-1
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, assert_never

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

import paho.mqtt.client as mqtt  # noqa: E402

from pysmarthome import GatewayConfig  # noqa: E402
from pysmarthome.codec import decode_command, encode_state, encode_status  # noqa: E402
from pysmarthome.models import (  # noqa: E402
    DeviceState,
    NumericValue,
    Off,
    On,
    RequestState,
    SetValue,
    TurnOff,
    TurnOn,
)
from pysmarthome.topics import build_command_topic, build_state_topic, build_status_topic  # noqa: E402

_LOG = logging.getLogger("simulate_device")


@dataclass
class SimulatedDevice:
    state: DeviceState
    commands: int = 0

    def apply(self, payload: bytes) -> str | None:
        """Apply a raw command; return the reply message or ``None`` to stay silent."""
        decoded = decode_command(payload)
        if decoded is None:
            _LOG.warning("Ignoring malformed command: %r", payload[:128])
            return None
        command = decoded.to_command()
        self.commands += 1
        if isinstance(command, TurnOn):
            self.state = On()
            return "Turned on"
        if isinstance(command, TurnOff):
            self.state = Off()
            return "Turned off"
        if isinstance(command, SetValue):
            self.state = NumericValue(value=command.value)
            return f"Value set to {command.value:g}"
        if isinstance(command, RequestState):
            return None
        assert_never(command)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulated device answering gateway commands.",
    )
    parser.add_argument("--home", required=True, help="Home identifier (topic segment).")
    parser.add_argument("--room", required=True, help="Room identifier (topic segment).")
    parser.add_argument("--device", required=True, help="Device identifier (topic segment).")
    parser.add_argument(
        "--broker",
        default=None,
        help="Broker URL; defaults to SMARTHOME_BROKER_URL.",
    )
    parser.add_argument(
        "--initial-value",
        type=float,
        default=None,
        help="Start as a numeric device with this value instead of Off.",
    )
    parser.add_argument(
        "--reply-delay",
        type=float,
        default=0.5,
        help="Seconds to wait before confirming a command.",
    )
    parser.add_argument(
        "--silent",
        action="store_true",
        help="Never confirm commands (devices stay WAITING in the app).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {"client_id": f"SimulatedDevice_{args.device}"}
    if args.broker:
        overrides["broker_url"] = args.broker
    config = GatewayConfig.from_env(**overrides)
    host, port, tls = config.broker

    base = config.base_topic
    cmd_topic = build_command_topic(args.home, args.room, args.device, base=base)
    state_topic = build_state_topic(args.home, args.room, args.device, base=base)
    status_topic = build_status_topic(args.home, args.room, args.device, base=base)

    initial: DeviceState = Off() if args.initial_value is None else NumericValue(value=args.initial_value)
    device = SimulatedDevice(state=initial)
    stop = threading.Event()

    def stop_handler(_signum: int, _frame: Any) -> None:
        stop.set()

    signal.signal(signal.SIGINT, stop_handler)
    signal.signal(signal.SIGTERM, stop_handler)

    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=config.client_id,
        protocol=mqtt.MQTTv311,
    )
    client.enable_logger(_LOG)
    if config.username:
        client.username_pw_set(config.username, config.password)
    if tls:
        client.tls_set()
    client.will_set(status_topic, encode_status(False), qos=1, retain=True)

    def publish_state(msg: str | None) -> None:
        payload = encode_state(device.state, msg)
        _LOG.info("-> %s %s", state_topic, payload)
        client.publish(state_topic, payload, qos=1)

    def on_connect(
        c: mqtt.Client,
        _userdata: Any,
        _flags: mqtt.ConnectFlags,
        reason_code: mqtt.ReasonCode,
        _properties: mqtt.Properties | None,
    ) -> None:
        if reason_code.is_failure:
            _LOG.error("Connect refused: %s", reason_code)
            stop.set()
            return
        _LOG.info("Connected to %s:%s, listening on %s", host, port, cmd_topic)
        c.subscribe(cmd_topic, qos=1)
        c.publish(status_topic, encode_status(True), qos=1, retain=True)
        publish_state(None)

    def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        _LOG.info("<- %s %s", msg.topic, msg.payload.decode("utf-8", errors="replace"))
        reply = device.apply(bytes(msg.payload))
        if args.silent:
            return
        # Runs on the paho network thread.
        timer = threading.Timer(args.reply_delay, publish_state, args=(reply,))
        timer.daemon = True
        timer.start()

    client.on_connect = on_connect
    client.on_message = on_message

    try:
        client.connect(host, port, keepalive=config.keepalive)
    except OSError as exc:
        print(f"[simulate] Connect to {host}:{port} failed: {exc}", file=sys.stderr)
        return 2

    client.loop_start()
    try:
        while not stop.is_set():
            time.sleep(0.5)
    finally:
        info = client.publish(status_topic, encode_status(False), qos=1, retain=True)
        info.wait_for_publish(timeout=2.0)
        client.disconnect()
        client.loop_stop()

    print(f"[simulate] Handled {device.commands} command(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
