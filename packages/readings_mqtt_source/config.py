"""
Configuration for the MQTT reading source.
"""

from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""
    broker: str
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: str = "rssi_reading_source"
    qos: int = 1
    keepalive: int = 60

    # Topic patterns
    base_topic: str = "rssi"

    # Buffering settings
    max_buffered_readings: int = 10000
    max_reading_age_seconds: Optional[float] = 5.0  # Drop readings older than this on arrival
    outlier_threshold_sigma: Optional[float] = 3.0

    @property
    def reading_topic(self) -> str:
        return f"{self.base_topic}/receiver/+/reading"  # + is receiver_id wildcard
