"""
MQTT subscription for receiver readings.
"""

from .source import MQTTReadingSource, parse_reading_message
from .config import MQTTConfig

__all__ = ['MQTTReadingSource', 'parse_reading_message', 'MQTTConfig']
