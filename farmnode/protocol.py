"""Message vocabulary, topic table and JSON wire encoding of the farm node."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

MAX_MESSAGE_SIZE = 512
UNSUCCESSFUL_ID = 0
REGISTER_TOPIC = "farm/register"


class ProtocolError(ValueError):
    """Raised when a message cannot be encoded or decoded."""


class Operator(Enum):
    """Operators carried in the ``operator`` field, in protocol order."""

    REGISTER_ACK = "register_ack"
    REGISTER = "register"
    KEEP_ALIVE = "keep_alive"
    KEEP_ALIVE_ACK = "keep_alive_ack"
    GATEWAY_DELETE = "gateway_delete"
    GATEWAY_DELETE_ACK = "gateway_delete_ack"
    GATEWAY_ADD = "gateway_add"
    GATEWAY_ADD_ACK = "gateway_add_ack"
    SENSOR_DATA = "sensor_data"
    ACTUATOR_DATA = "actuator_data"
    SETPOINT = "setpoint"
    SETPOINT_ACK = "setpoint_ack"


# Leaf of the per-room topic for every operator that lives under a room.
_ROOM_LEAVES = {
    Operator.KEEP_ALIVE: "alive",
    Operator.KEEP_ALIVE_ACK: "alive",
    Operator.GATEWAY_DELETE: "sync_node",
    Operator.GATEWAY_DELETE_ACK: "sync_node",
    Operator.GATEWAY_ADD: "sync_node",
    Operator.GATEWAY_ADD_ACK: "sync_node",
    Operator.SENSOR_DATA: "sensor",
    Operator.ACTUATOR_DATA: "actuator",
    Operator.SETPOINT: "actuator",
    Operator.SETPOINT_ACK: "actuator",
}

ROOM_OPERATORS = tuple(_ROOM_LEAVES)


class TopicTable:
    """The MQTT topic used for each operator, specialised once a room is known."""

    def __init__(self):
        self._topics: dict[Operator, str] = {}
        self.reset()

    def topic(self, operator):
        """Return the topic for ``operator``."""
        return self._topics[Operator(operator)]

    def assign_room(self, room_id):
        """Point every room topic at ``room_id``."""
        for operator, leaf in _ROOM_LEAVES.items():
            self._topics[operator] = f"farm/{room_id}/{leaf}"

    def room_topics(self):
        """Topics of the room operators, in protocol order."""
        return [self._topics[operator] for operator in ROOM_OPERATORS]

    def reset(self):
        """Restore the topics used before any room is assigned."""
        self._topics = {
            Operator.REGISTER_ACK: REGISTER_TOPIC,
            Operator.REGISTER: REGISTER_TOPIC,
        }
        self._topics.update(
            {operator: f"farm/*/{leaf}" for operator, leaf in _ROOM_LEAVES.items()}
        )


def encode(doc: Any) -> bytes:
    """Serialise ``doc`` as compact JSON bytes that fit in one message."""
    try:
        data = json.dumps(doc, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"cannot encode message: {exc}") from exc
    if len(data) >= MAX_MESSAGE_SIZE:
        raise ProtocolError(
            f"message of {len(data)} bytes exceeds the {MAX_MESSAGE_SIZE}-byte limit"
        )
    return data


def decode(payload: bytes | str) -> dict:
    """Parse a JSON object from ``payload``."""
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = bytes(payload).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"payload is not UTF-8: {exc}") from exc
    try:
        doc = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise ProtocolError("message is not a JSON object")
    return doc