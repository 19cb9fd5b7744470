"""
MQTT reading source - subscribes to receiver topics and buffers readings
until the processor pulls them.
"""

import json
import logging
import threading
import time
import uuid
from typing import Any, List, Optional

import paho.mqtt.client as mqtt

from packages.datatypes.datatypes import Reading
from packages.datatypes.errors import SourceReadError
from packages.localization_algos.binning.reading_buffer import ReadingBuffer
from packages.pipeline.interfaces import ReadingSource
from .config import MQTTConfig

# Setup JSON logging
logging.basicConfig(
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "message": %(message)s}',
    level=logging.INFO
)
logger = logging.getLogger(__name__)


def parse_reading_message(topic: str, payload: bytes, received_at: Optional[float] = None) -> Reading:
    """
    Parse one MQTT message into a Reading.

    Topic format: <base>/receiver/<receiver_id>/reading
    Payload: {"value": -67.5, "timestamp": 1700000000.0}
    The timestamp falls back to t_unix_ns / 1e9, then to the receive time.

    Raises:
        ValueError: If topic or payload is malformed
    """
    parts = topic.split('/')
    if len(parts) < 4 or parts[-3] != 'receiver' or parts[-1] != 'reading':
        raise ValueError(f"Invalid topic format: {topic}. Expected: <base>/receiver/{{receiver_id}}/reading")
    receiver_id = parts[-2]

    data = json.loads(payload.decode('utf-8'))
    if not isinstance(data, dict) or 'value' not in data:
        raise ValueError("Payload must be an object with a 'value' field")

    timestamp = received_at if received_at is not None else time.time()
    if 'timestamp' in data:
        timestamp = float(data['timestamp'])
    elif 't_unix_ns' in data:
        timestamp = data['t_unix_ns'] / 1e9  # nanoseconds to seconds

    return Reading(
        receiver_id=receiver_id,
        value=float(data['value']),
        timestamp=timestamp
    )


class MQTTReadingSource(ReadingSource):
    """
    MQTT subscriber for receiver readings.
    The network loop runs on paho's own thread; `pull` only drains the buffer.
    """

    def __init__(self, config: MQTTConfig, buffer: Optional[ReadingBuffer] = None):
        """
        Initialize the MQTT source.

        Args:
            config: MQTT configuration
            buffer: Reading buffer (created from config if omitted)
        """
        self.config = config
        self.buffer = buffer or ReadingBuffer(
            max_readings=config.max_buffered_readings,
            max_age_seconds=config.max_reading_age_seconds,
            outlier_threshold_sigma=config.outlier_threshold_sigma
        )

        # MQTT client with unique ID to prevent duplicate connections
        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"{config.client_id}_{uuid.uuid4()}",
            userdata={'source': self},
            protocol=mqtt.MQTTv311,
            clean_session=True
        )

        # Set callbacks
        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message
        self._client.on_disconnect = self._on_disconnect

        # Enable automatic reconnect
        self._client.reconnect_delay_set(min_delay=1, max_delay=5)

        # Set auth if provided
        if config.username and config.password:
            self._client.username_pw_set(config.username, config.password)

        # Connection status
        self._connected = False
        self._connection_lock = threading.Lock()
        self._accepting = False
        self.malformed_messages = 0

    @property
    def connected(self) -> bool:
        with self._connection_lock:
            return self._connected

    def start(self):
        """Connect and start the network loop."""
        try:
            self._client.connect(
                self.config.broker,
                self.config.port,
                self.config.keepalive
            )
        except (OSError, ValueError) as e:
            logger.error(json.dumps({
                "event": "start_failed",
                "error": str(e)
            }))
            raise SourceReadError(f"Cannot connect to {self.config.broker}:{self.config.port}: {e}") from e

        self._accepting = True
        self._client.loop_start()

        logger.info(json.dumps({
            "event": "reading_source_started",
            "broker": self.config.broker,
            "port": self.config.port
        }))

    def stop(self):
        """Stop admitting readings and disconnect. Buffered readings stay pullable."""
        self._accepting = False
        self._client.loop_stop()
        self._client.disconnect()
        with self._connection_lock:
            self._connected = False

        logger.info(json.dumps({
            "event": "reading_source_stopped",
            "buffered": len(self.buffer)
        }))

    def pull(self) -> List[Reading]:
        return self.buffer.drain()

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None):
        """Handle MQTT connection."""
        if not reason_code.is_failure:
            with self._connection_lock:
                if self._connected:
                    # Already connected, don't subscribe again
                    return
                self._connected = True

            client.subscribe(self.config.reading_topic, qos=self.config.qos)

            logger.info(json.dumps({
                "event": "mqtt_connected",
                "topic": self.config.reading_topic,
                "broker": self.config.broker,
                "qos": self.config.qos
            }))
        else:
            with self._connection_lock:
                self._connected = False

            logger.error(json.dumps({
                "event": "mqtt_connect_failed",
                "reason": str(reason_code)
            }))

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None):
        """Handle MQTT disconnection."""
        with self._connection_lock:
            self._connected = False
        logger.warning(json.dumps({
            "event": "mqtt_disconnected",
            "reason": str(reason_code)
        }))

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage):
        """Parse message and buffer the reading."""
        if not self._accepting:
            return
        try:
            reading = parse_reading_message(msg.topic, msg.payload)
        except (ValueError, TypeError, UnicodeDecodeError) as e:
            self.malformed_messages += 1
            preview = msg.payload[:200].decode('utf-8', errors='replace')
            logger.error(json.dumps({
                "event": "message_processing_failed",
                "error": str(e),
                "topic": msg.topic,
                "payload_preview": preview
            }))
            return

        accepted = self.buffer.add(reading)

        logger.debug(json.dumps({
            "event": "reading_received",
            "receiver_id": reading.receiver_id,
            "accepted": accepted,
            "topic": msg.topic
        }))
