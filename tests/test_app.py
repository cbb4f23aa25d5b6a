import random
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from farmnode.app import RECONNECT_DELAY, Bridge, build_parser, make_client_id
from farmnode.node import Node
from farmnode.protocol import decode, encode

MAC = "02:00:00:00:00:01"


class FakeClient:
    def __init__(self, connected=True, stop_after=None, fail_reconnect=False):
        self.connected = connected
        self.stop_after = stop_after
        self.fail_reconnect = fail_reconnect
        self.pending = False
        self.published = []
        self.subscribed = []
        self.loops = 0
        self.reconnects = 0
        self.on_connect = None
        self.on_message = None

    def publish(self, topic, payload):
        self.published.append((topic, payload))

    def subscribe(self, topic):
        self.subscribed.append(topic)

    def disconnect(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    def reconnect(self):
        self.reconnects += 1
        if self.fail_reconnect:
            raise OSError("unreachable")
        self.pending = True

    def loop(self, timeout=1.0):
        self.loops += 1
        if self.pending:
            self.pending = False
            self.connected = True
            self.on_connect(self, None, {}, 0, None)
        if self.stop_after is not None and self.loops >= self.stop_after:
            raise KeyboardInterrupt


class FakePort:
    def __init__(self, data=b""):
        self.buffer = data
        self.written = []

    @property
    def in_waiting(self):
        return len(self.buffer)

    def read(self, size):
        chunk, self.buffer = self.buffer[:size], self.buffer[size:]
        return chunk

    def write(self, data):
        self.written.append(data)


def make_bridge(client, port):
    node = Node(MAC, client.publish, port.write, client.subscribe, client.disconnect)
    return Bridge(node, client, port)


def register(bridge, client):
    payload = encode(
        {
            "operator": "register_ack",
            "status": 1,
            "info": {"node_id": 2, "room_id": 5, "mac_address": MAC},
        }
    )
    client.on_message(client, None, SimpleNamespace(topic="farm/register", payload=payload))
    return payload


def test_make_client_id_shape():
    client_id = make_client_id(random.Random(1))
    prefix, _, digits = client_id.partition("_")
    assert prefix == "device"
    assert 0 <= int(digits, 16) < 0xFFFF
    assert digits == digits.lower()


def test_make_client_id_hex():
    rng = SimpleNamespace(randrange=lambda upper: 255)
    assert make_client_id(rng) == "device_ff"


def test_parser_defaults():
    args = build_parser().parse_args(["--serial", "/dev/ttyS9"])
    assert args.broker == "broker.hivemq.com"
    assert args.mqtt_port == 1883
    assert args.baud == 115200
    assert args.serial == "/dev/ttyS9"


def test_parser_requires_serial():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_on_connect_registers():
    client = FakeClient()
    make_bridge(client, FakePort())
    client.on_connect(client, None, {}, 0, None)
    assert client.subscribed == ["farm/register", "farm/register"]
    assert decode(client.published[0][1])["operator"] == "register"


def test_on_connect_refused_does_nothing():
    client = FakeClient()
    make_bridge(client, FakePort())
    client.on_connect(client, None, {}, 5, None)
    assert client.subscribed == []
    assert client.published == []


def test_message_routed_to_node_and_forwarded():
    client = FakeClient()
    port = FakePort()
    bridge = make_bridge(client, port)
    payload = register(bridge, client)
    assert bridge.node.is_registered()
    assert port.written == [payload]


def test_poll_serial_unregistered_leaves_input():
    port = FakePort(b'{"operator":"register"}')
    bridge = make_bridge(FakeClient(), port)
    assert bridge.poll_serial() is None
    assert port.in_waiting > 0


def test_poll_serial_forwards_message():
    client = FakeClient()
    text = '{"operator":"sensor_data","info":{"node_id":0}}'
    port = FakePort()
    bridge = make_bridge(client, port)
    register(bridge, client)
    client.subscribed.clear()
    port.buffer = text.encode()
    assert bridge.poll_serial() == text
    topic, payload = client.published[-1]
    assert topic == bridge.node.topics.topic("sensor_data")
    assert decode(payload)["info"]["node_id"] == 2


def test_poll_serial_empty_port():
    client = FakeClient()
    bridge = make_bridge(client, FakePort())
    register(bridge, client)
    assert bridge.poll_serial() is None


def test_run_connects_then_stops():
    client = FakeClient(connected=False, stop_after=2)
    bridge = make_bridge(client, FakePort())
    bridge.run()
    assert client.reconnects == 1
    assert client.subscribed == ["farm/register", "farm/register"]
    assert decode(client.published[0][1])["operator"] == "register"


def test_run_waits_after_failed_connect():
    client = FakeClient(connected=False, fail_reconnect=True)
    bridge = make_bridge(client, FakePort())
    with patch("farmnode.app.time.sleep", side_effect=KeyboardInterrupt) as sleep:
        bridge.run()
    assert client.reconnects == 1
    sleep.assert_called_once_with(RECONNECT_DELAY)
    assert client.published == []