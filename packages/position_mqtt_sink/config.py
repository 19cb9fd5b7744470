"""
Configuration for the MQTT position publisher.
"""

from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class PublisherConfig:
    """MQTT broker configuration."""
    broker: str
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: str = "rssi_position_publisher"
    qos: int = 0  # Fire-and-forget; the next estimate supersedes a lost one
    keepalive: int = 60

    # Topic patterns
    base_topic: str = "rssi"

    # Reconnection settings
    reconnect_delay_min: float = 0.1
    reconnect_delay_max: float = 5.0

    @property
    def position_topic(self) -> str:
        return f"{self.base_topic}/position"
