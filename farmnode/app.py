"""Command-line bridge between a serial-attached controller and an MQTT broker."""

from __future__ import annotations

import argparse
import logging
import random
import time
import uuid

import paho.mqtt.client as mqtt
import serial

from farmnode.node import Node

logger = logging.getLogger(__name__)

DEFAULT_BROKER = "broker.hivemq.com"
DEFAULT_MQTT_PORT = 1883
DEFAULT_BAUD = 115200
RECONNECT_DELAY = 3.0
LOOP_TIMEOUT = 0.1


def make_client_id(rng):
    """Return a random MQTT client id of the form ``device_<hex>``."""
    return f"device_{rng.randrange(0xFFFF):x}"


def _default_mac() -> str:
    number = uuid.getnode()
    return ":".join(f"{(number >> shift) & 0xFF:02X}" for shift in range(40, -1, -8))


class Bridge:
    """Runs a node against an MQTT client and a serial port."""

    def __init__(self, node, client, port):
        self.node = node
        self.client = client
        self.port = port
        client.on_connect = self._on_connect
        client.on_message = self._on_message

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self.node.on_connected()
        else:
            logger.warning("mqtt connection refused: %s", reason_code)

    def _on_message(self, client, userdata, message):
        self.node.on_mqtt_message(message.topic, message.payload)

    def poll_serial(self):
        """Pass pending serial input to a registered node; return the text read."""
        if not self.node.is_registered():
            return None
        waiting = self.port.in_waiting
        if not waiting:
            return None
        text = self.port.read(waiting).decode("utf-8", errors="replace")
        self.node.on_serial_message(text)
        return text

    def _ensure_connected(self) -> bool:
        if self.client.is_connected():
            return True
        logger.info("mqtt disconnected, connecting")
        try:
            self.client.reconnect()
        except OSError as exc:
            logger.warning("mqtt connection failed: %s", exc)
            return False
        deadline = time.monotonic() + RECONNECT_DELAY
        while not self.client.is_connected() and time.monotonic() < deadline:
            self.client.loop(timeout=LOOP_TIMEOUT)
        return self.client.is_connected()

    def run(self):
        """Serve until interrupted."""
        try:
            while True:
                if not self._ensure_connected():
                    time.sleep(RECONNECT_DELAY)
                    continue
                self.client.loop(timeout=LOOP_TIMEOUT)
                self.node.tick()
                self.poll_serial()
        except KeyboardInterrupt:
            logger.info("stopped")


def build_parser():
    """Return the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="farmnode", description="Bridge a farm sensor controller to MQTT."
    )
    parser.add_argument("--serial", required=True, help="serial device of the controller")
    parser.add_argument("--baud", type=int, default=DEFAULT_BAUD, help="serial baud rate")
    parser.add_argument("--broker", default=DEFAULT_BROKER, help="MQTT broker host")
    parser.add_argument("--mqtt-port", type=int, default=DEFAULT_MQTT_PORT, help="MQTT port")
    parser.add_argument("--mac", default=None, help="MAC address announced to the gateway")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug messages")
    return parser


def main(argv=None):
    """Run the bridge from the command line."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    mac = args.mac or _default_mac()
    port = serial.Serial(args.serial, args.baud, timeout=1)
    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2, client_id=make_client_id(random.Random())
    )
    client.connect_async(args.broker, args.mqtt_port)
    node = Node(
        mac,
        publish=lambda topic, payload: client.publish(topic, payload),
        forward=port.write,
        subscribe=lambda topic: client.subscribe(topic),
        disconnect=client.disconnect,
    )
    try:
        Bridge(node, client, port).run()
    finally:
        port.close()
    return 0