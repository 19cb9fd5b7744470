"""
MQTT result sink - publishes position estimates for downstream displays.
"""

import json
import logging
import threading
from typing import Any

import paho.mqtt.client as mqtt

from packages.datatypes.datatypes import PositionEstimate
from packages.datatypes.errors import SinkWriteError
from packages.pipeline.interfaces import ResultSink
from .config import PublisherConfig

# Setup JSON logging
logging.basicConfig(
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "message": %(message)s}',
    level=logging.INFO
)
logger = logging.getLogger(__name__)

class MQTTResultSink(ResultSink):
    """
    MQTT publisher for position estimates.
    Reconnects with backoff from paho's network loop while running.
    """

    def __init__(self, config: PublisherConfig):
        """
        Initialize the publisher.

        Args:
            config: MQTT configuration
        """
        self.config = config

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            userdata={'sink': self},
            protocol=mqtt.MQTTv311
        )

        # Set callbacks
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect

        # Enable automatic reconnect with backoff
        self._client.reconnect_delay_set(
            min_delay=config.reconnect_delay_min,
            max_delay=config.reconnect_delay_max
        )

        # Set auth if provided
        if config.username and config.password:
            self._client.username_pw_set(config.username, config.password)

        # Connection status
        self._connected = False
        self._connection_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        with self._connection_lock:
            return self._connected

    def start(self):
        """Connect to the MQTT broker."""
        try:
            self._client.connect(
                self.config.broker,
                self.config.port,
                self.config.keepalive
            )
        except (OSError, ValueError) as e:
            logger.error(json.dumps({
                "event": "connect_failed",
                "error": str(e)
            }))
            raise SinkWriteError(f"Cannot connect to {self.config.broker}:{self.config.port}: {e}") from e

        self._client.loop_start()

        logger.info(json.dumps({
            "event": "publisher_connected",
            "broker": self.config.broker,
            "topic": self.config.position_topic
        }))

    def stop(self):
        """Disconnect from the MQTT broker."""
        self._client.loop_stop()
        self._client.disconnect()

        logger.info(json.dumps({
            "event": "publisher_disconnected"
        }))

    def write(self, estimate: PositionEstimate):
        """
        Publish one estimate.

        Raises:
            SinkWriteError: If the client refuses the message
        """
        info = self._client.publish(
            self.config.position_topic,
            json.dumps(estimate.to_dict()),
            qos=self.config.qos
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise SinkWriteError(f"Publish failed: {mqtt.error_string(info.rc)}")

        logger.debug(json.dumps({
            "event": "estimate_published",
            "sequence": estimate.sequence,
            "topic": self.config.position_topic
        }))

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None):
        """Handle successful connection."""
        if not reason_code.is_failure:
            with self._connection_lock:
                self._connected = True

            logger.info(json.dumps({
                "event": "mqtt_connected",
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
        """Handle disconnection; paho reconnects from its network loop."""
        with self._connection_lock:
            self._connected = False

        logger.warning(json.dumps({
            "event": "mqtt_disconnected",
            "reason": str(reason_code)
        }))
