"""
Telemetry message codec.

Frames follow the simulator's socket.io convention: a leading "42" marks a
websocket event whose body is a JSON array ``[event_name, payload]``. A frame
whose body is missing or ``null`` puts the simulator in manual mode.

Usage:
    handler = TelemetryHandler(controller)
    reply = handler.handle(frame)   # None if nothing to send
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from trackmpc.exceptions import MalformedMessageError
from trackmpc.logging import get_logger
from trackmpc.types import ControlCommand, TelemetryMessage

logger = get_logger("telemetry")

EVENT_PREFIX = "42"
MANUAL_FRAME = '42["manual",{}]'

_REQUIRED_FIELDS = ("ptsx", "ptsy", "x", "y", "psi", "speed")


@dataclass
class TelemetryEvent:
    """One decoded websocket event."""
    name: str
    payload: Optional[Dict[str, Any]]

    @property
    def is_manual(self) -> bool:
        return self.payload is None


def extract_payload(frame: str) -> Optional[str]:
    """
    Return the JSON array text of an event frame, or None if it carries no data.
    """
    if "null" in frame:
        return None
    start = frame.find("[")
    end = frame.rfind("]")
    if start == -1 or end <= start:
        return None
    return frame[start:end + 1]


def parse_frame(frame: str) -> Optional[TelemetryEvent]:
    """
    Decode one inbound frame.

    Returns:
        None for frames that are not websocket events; an event with
        ``payload=None`` for manual mode; otherwise the decoded event.

    Raises:
        MalformedMessageError: if the event body is not valid JSON
    """
    if len(frame) <= 2 or not frame.startswith(EVENT_PREFIX):
        return None

    body = extract_payload(frame)
    if body is None:
        return TelemetryEvent(name="manual", payload=None)

    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedMessageError(f"invalid JSON ({e.msg})", frame) from e

    if not isinstance(decoded, list) or not decoded or not isinstance(decoded[0], str):
        raise MalformedMessageError("event body must be [name, payload]", frame)

    payload = decoded[1] if len(decoded) > 1 else {}
    if payload is not None and not isinstance(payload, dict):
        raise MalformedMessageError("event payload must be an object", frame)
    return TelemetryEvent(name=decoded[0], payload=payload)


def decode_telemetry(payload: Dict[str, Any]) -> TelemetryMessage:
    """
    Build a TelemetryMessage from a telemetry payload.

    Raises:
        MalformedMessageError: if a field is missing or has the wrong type
    """
    missing = [k for k in _REQUIRED_FIELDS if k not in payload]
    if missing:
        raise MalformedMessageError(f"missing fields {missing}")

    try:
        return TelemetryMessage(
            ptsx=[float(p) for p in payload["ptsx"]],
            ptsy=[float(p) for p in payload["ptsy"]],
            x=float(payload["x"]),
            y=float(payload["y"]),
            psi=float(payload["psi"]),
            speed=float(payload["speed"]),
            steering_angle=_optional_float(payload.get("steering_angle")),
            throttle=_optional_float(payload.get("throttle")),
        )
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"bad field value ({e})") from e


def encode_telemetry(message: TelemetryMessage) -> str:
    """Encode a message as an inbound telemetry frame (used by the simulator)."""
    payload = {
        "ptsx": list(message.ptsx),
        "ptsy": list(message.ptsy),
        "x": message.x,
        "y": message.y,
        "psi": message.psi,
        "speed": message.speed,
        "steering_angle": message.steering_angle if message.steering_angle is not None else 0.0,
        "throttle": message.throttle if message.throttle is not None else 0.0,
    }
    return f"{EVENT_PREFIX}{json.dumps(['telemetry', payload])}"


def steer_frame(command: ControlCommand) -> str:
    """Encode the outbound steer event."""
    return f"{EVENT_PREFIX}{json.dumps(['steer', command.to_dict()])}"


class TelemetryHandler:
    """
    Maps inbound frames to reply frames through a controller.
    """

    def __init__(self, controller, reply_delay: Optional[float] = None):
        """
        Args:
            controller: RecedingHorizonController
            reply_delay: Seconds to sleep before replying; defaults to the
                configured latency when ``latency.simulate_in_loop`` is set
        """
        self.controller = controller
        if reply_delay is None:
            latency = controller.config.latency
            reply_delay = latency.delay if latency.simulate_in_loop else 0.0
        self.reply_delay = reply_delay

    def handle(self, frame: str) -> Optional[str]:
        """
        Process one frame.

        Returns:
            Reply frame, or None when the frame needs no reply
        """
        try:
            event = parse_frame(frame)
        except MalformedMessageError as e:
            logger.warning(f"Dropping frame: {e}")
            return None

        if event is None:
            return None
        if event.is_manual:
            return MANUAL_FRAME
        if event.name != "telemetry":
            logger.debug(f"Ignoring event '{event.name}'")
            return None

        try:
            message = decode_telemetry(event.payload)
        except MalformedMessageError as e:
            logger.warning(f"Dropping telemetry: {e}")
            return None

        command = self.controller.step(message)
        if self.reply_delay > 0:
            time.sleep(self.reply_delay)
        return steer_frame(command)


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)
