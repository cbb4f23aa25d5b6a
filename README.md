# farmnode

A bridge between a microcontroller on a serial line and an MQTT farm gateway.

A node registers with the gateway by publishing its MAC address on
`farm/register`. When the gateway answers on that topic with a `register_ack`
message whose `status` is 1 and whose MAC address matches, the node takes its
node id and room id from the message, writes the message unchanged to the
serial line, and subscribes to the room's topics:

| Operators                                   | Topic                   |
|---------------------------------------------|-------------------------|
| `register`, `register_ack`                  | `farm/register`         |
| `keep_alive`, `keep_alive_ack`              | `farm/<room>/alive`     |
| `gateway_delete`, `gateway_add` and acks    | `farm/<room>/sync_node` |
| `sensor_data`                               | `farm/<room>/sensor`    |
| `actuator_data`, `setpoint`, `setpoint_ack` | `farm/<room>/actuator`  |

Once registered, the node:

- answers `keep_alive` messages addressed to its MAC with `keep_alive_ack`
  (status 1), and resets itself if the node id in the message does not match;
- answers `gateway_delete` messages addressed to its MAC with
  `gateway_delete_ack` and resets itself;
- reads JSON messages from the serial line. A message with operator
  `register` triggers a new registration. Any other message must carry
  `"node_id": 0` in its `info` object; the node fills in its own node id and
  publishes it on the topic of its operator. Other messages are dropped.

A reset clears the node and room ids and drops the broker connection.
While it is not registered, the node registers again every two minutes.

Messages are encoded as compact JSON and must stay under 512 bytes.

## Installation

```
pip install farmnode
```

## Command line

```
farmnode --serial /dev/ttyUSB0
```

opens the serial port, connects to the MQTT broker and forwards messages in
both directions until interrupted. Options:

| Option          | Meaning                                   | Default             |
|-----------------|-------------------------------------------|---------------------|
| `--serial`      | serial device of the controller (required)| —                   |
| `--baud`        | serial baud rate                          | `115200`            |
| `--broker`      | MQTT broker host                          | `broker.hivemq.com` |
| `--mqtt-port`   | MQTT port                                 | `1883`              |
| `--mac`         | MAC address announced to the gateway      | this host's address |
| `-v, --verbose` | log debug messages                        | off                 |

The MQTT client id is `device_` followed by a random hexadecimal number. When
the broker connection is lost, the bridge reconnects, waiting three seconds
between failed attempts, and registers again after each connection.

## Library use

The protocol state machine in `farmnode.node` does not depend on any
transport; it is driven by callbacks:

```python
import time

from farmnode.node import Node
from farmnode.protocol import decode

node = Node(
    mac_address="02:00:00:00:00:01",
    publish=lambda topic, payload: print(topic, decode(payload)),
    forward=lambda data: print("to serial:", data),
    subscribe=lambda topic: print("subscribe", topic),
    disconnect=lambda: print("disconnect"),
    clock=time.monotonic,
)
node.on_connected()
node.on_mqtt_message("farm/register", b'{"operator": "register_ack", ...}')
node.tick()  # re-registers when due
```

`publish` receives a topic and encoded JSON bytes, `forward` receives bytes
for the serial line.

`farmnode.protocol` holds the `Operator` enum, the `TopicTable` that maps
operators to topics, and `encode` / `decode`, which raise `ProtocolError` for
messages that are not JSON objects or are too large.

`farmnode.app.Bridge` connects a `Node` to a paho-mqtt client and a serial
port; `Bridge.poll_serial()` passes pending serial input to a registered node.

## What it does not do

The bridge does not set up the host's network connection or choose among
wireless networks; it expects the broker to be reachable already. It has no
status LED or separate debug port; diagnostics go to Python logging.

## Tests

```
pip install farmnode[test]
pytest
```