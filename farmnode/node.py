"""State machine of a farm sensor node: registration, keep-alive and forwarding."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from farmnode.protocol import (
    ROOM_OPERATORS,
    UNSUCCESSFUL_ID,
    Operator,
    ProtocolError,
    TopicTable,
    decode,
    encode,
)

logger = logging.getLogger(__name__)

RE_REGISTER_WAITING_TIME = 2 * 60  # seconds
NODE_FUNCTION = "sensor"


def _info(doc: dict) -> dict:
    info = doc.get("info")
    return info if isinstance(info, dict) else {}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals_int(value: Any, number: int) -> bool:
    return _is_number(value) and value == number


def _to_int(value: Any) -> int:
    return int(value) if _is_number(value) else 0


class Node:
    """Protocol logic of one node, driven by MQTT and serial messages."""

    def __init__(
        self,
        mac_address: str,
        publish: Callable[[str, bytes], Any],
        forward: Callable[[bytes], Any],
        subscribe: Callable[[str], Any],
        disconnect: Callable[[], Any],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.mac_address = mac_address
        self._publish = publish
        self._forward = forward
        self._subscribe = subscribe
        self._disconnect = disconnect
        self._clock = clock
        self.node_id = UNSUCCESSFUL_ID
        self.room_id = UNSUCCESSFUL_ID
        self.topics = TopicTable()
        self._last_attempt = clock()

    def is_registered(self):
        """True once the gateway has assigned both a node and a room id."""
        return self.node_id != UNSUCCESSFUL_ID and self.room_id != UNSUCCESSFUL_ID

    def _send(self, operator: Operator, doc: dict) -> None:
        self._publish(self.topics.topic(operator), encode(doc))

    def _mac_matches(self, doc: dict) -> bool:
        return _info(doc).get("mac_address") == self.mac_address

    def registration(self):
        """Ask the gateway to register this node."""
        doc = {
            "operator": Operator.REGISTER.value,
            "info": {"node_function": NODE_FUNCTION, "mac_address": self.mac_address},
            "status": 0,
        }
        self._send(Operator.REGISTER, doc)

    def on_connected(self):
        """Subscribe to the registration topics and register."""
        logger.debug("mqtt connected")
        self._subscribe(self.topics.topic(Operator.REGISTER))
        self._subscribe(self.topics.topic(Operator.REGISTER_ACK))
        self.registration()

    def on_mqtt_message(self, topic, payload):
        """Handle a message received from the broker."""
        try:
            doc = decode(payload)
        except ProtocolError:
            return
        operator = doc.get("operator")

        if topic == self.topics.topic(Operator.REGISTER_ACK):
            if (
                operator == Operator.REGISTER_ACK.value
                and _equals_int(doc.get("status"), 1)
                and self._mac_matches(doc)
            ):
                self._accept_registration(doc, payload)

        if topic == self.topics.topic(Operator.KEEP_ALIVE):
            if operator == Operator.KEEP_ALIVE.value and self._mac_matches(doc):
                logger.debug("receive keepAlive msg")
                if _equals_int(_info(doc).get("node_id"), self.node_id):
                    doc["operator"] = Operator.KEEP_ALIVE_ACK.value
                    doc["status"] = 1
                    self._send(Operator.KEEP_ALIVE_ACK, doc)
                else:
                    logger.debug("wrong keepAlive msg, re-register")
                    self.reset()

        if topic == self.topics.topic(Operator.GATEWAY_DELETE):
            if operator == Operator.GATEWAY_DELETE.value and self._mac_matches(doc):
                logger.debug("this device is deleted")
                doc["operator"] = Operator.GATEWAY_DELETE_ACK.value
                self._send(Operator.GATEWAY_DELETE_ACK, doc)
                self.reset()

    def _accept_registration(self, doc: dict, payload) -> None:
        info = _info(doc)
        self.node_id = _to_int(info.get("node_id"))
        self.room_id = _to_int(info.get("room_id"))
        logger.debug("registered as node %s in room %s", self.node_id, self.room_id)
        raw = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        self._forward(raw)
        self.topics.assign_room(self.room_id)
        for room_topic in self.topics.room_topics():
            self._subscribe(room_topic)

    def on_serial_message(self, text):
        """Handle a JSON message from the microcontroller on the serial link."""
        if not self.is_registered():
            return
        try:
            doc = decode(text)
        except ProtocolError:
            return
        operator = doc.get("operator")
        if operator == Operator.REGISTER.value:
            logger.debug("controller asks to register")
            self.registration()
            return
        info = doc.get("info")
        if not isinstance(info, dict) or not _equals_int(info.get("node_id"), 0):
            logger.debug("controller sent an invalid message")
            return
        info["node_id"] = self.node_id
        for room_operator in ROOM_OPERATORS:
            if operator == room_operator.value:
                self._send(room_operator, doc)

    def registration_due(self):
        """True when unregistered for longer than the re-registration wait."""
        return (
            not self.is_registered()
            and self._clock() - self._last_attempt > RE_REGISTER_WAITING_TIME
        )

    def tick(self):
        """Re-register if due; return whether a registration was sent."""
        if not self.registration_due():
            return False
        logger.debug("no registration")
        self._last_attempt = self._clock()
        self.registration()
        return True

    def reset(self):
        """Forget the registration and drop the broker connection."""
        self.room_id = UNSUCCESSFUL_ID
        self.node_id = UNSUCCESSFUL_ID
        self._disconnect()