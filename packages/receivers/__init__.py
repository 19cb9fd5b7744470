"""
Receiver registry and room map sources.
"""

from .registry import ReceiverRegistry
from .map_sources import MapSource, FixtureMapSource, JSONFileMapSource, parse_room_map

__all__ = [
    'ReceiverRegistry',
    'MapSource',
    'FixtureMapSource',
    'JSONFileMapSource',
    'parse_room_map'
]
