"""
MQTT publishing of position estimates.
"""

from .sink import MQTTResultSink
from .config import PublisherConfig

__all__ = ['MQTTResultSink', 'PublisherConfig']
