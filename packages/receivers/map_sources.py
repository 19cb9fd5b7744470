"""
Sources of room maps and their receivers.

Every variant implements `load_room_map() -> RoomMap`; callers do not care
whether the room comes from code or from a JSON document.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from packages.datatypes.datatypes import (
    GRANULARITY_DEFAULT,
    PathLossModel,
    Receiver,
    RoomBounds,
    RoomMap,
)
from packages.datatypes.errors import MapSourceError

logger = logging.getLogger(__name__)


class MapSource:
    """Supplies one room map at startup."""

    def load_room_map(self) -> RoomMap:
        raise NotImplementedError


class FixtureMapSource(MapSource):
    """
    Fixed demo room: 6 m x 4 m lab with one calibrated receiver per corner.
    Useful for bring-up without any map file.
    """

    CALIBRATION = PathLossModel(tx_power_dbm=-59.0, path_loss_exponent=1.9)

    def __init__(self, granularity: float = GRANULARITY_DEFAULT):
        self.granularity = granularity

    def load_room_map(self) -> RoomMap:
        receivers = (
            Receiver("rx-0", 0.0, 0.0, self.CALIBRATION),   # bottom-left
            Receiver("rx-1", 6.0, 0.0, self.CALIBRATION),   # bottom-right
            Receiver("rx-2", 6.0, 4.0, self.CALIBRATION),   # top-right
            Receiver("rx-3", 0.0, 4.0, self.CALIBRATION),   # top-left
        )
        return RoomMap(
            title="Lab",
            bounds=RoomBounds(0.0, 6.0, 0.0, 4.0),
            receivers=receivers,
            granularity=self.granularity
        )


class JSONFileMapSource(MapSource):
    """
    Room map stored as a JSON document:

        {
          "title": "Lab",
          "bounds": {"x_from": 0, "x_to": 6, "y_from": 0, "y_to": 4},
          "granularity": 0.25,
          "receivers": [
            {"id": "rx-0", "x": 0, "y": 0,
             "calibration": {"tx_power_dbm": -59, "path_loss_exponent": 2.0}}
          ]
        }
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load_room_map(self) -> RoomMap:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise MapSourceError(f"Cannot read room map {self.path}: {e}") from e

        room_map = parse_room_map(document)
        logger.info(json.dumps({
            "event": "room_map_loaded",
            "path": str(self.path),
            "title": room_map.title,
            "n_receivers": len(room_map.receivers)
        }))
        return room_map


def parse_room_map(document: Dict[str, Any]) -> RoomMap:
    """Build a RoomMap from its JSON representation."""
    try:
        bounds = document['bounds']
        receivers = tuple(_parse_receiver(r) for r in document.get('receivers', []))
        seen = set()
        for receiver in receivers:
            if receiver.receiver_id in seen:
                raise ValueError(f"duplicate receiver id {receiver.receiver_id!r}")
            seen.add(receiver.receiver_id)
        return RoomMap(
            title=str(document.get('title', '')),
            bounds=RoomBounds(
                x_from=float(bounds['x_from']),
                x_to=float(bounds['x_to']),
                y_from=float(bounds['y_from']),
                y_to=float(bounds['y_to'])
            ),
            receivers=receivers,
            granularity=float(document.get('granularity', GRANULARITY_DEFAULT))
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MapSourceError(f"Invalid room map definition: {e}") from e


def _parse_receiver(entry: Dict[str, Any]) -> Receiver:
    calibration = None
    if entry.get('calibration') is not None:
        c = entry['calibration']
        calibration = PathLossModel(
            tx_power_dbm=float(c['tx_power_dbm']),
            path_loss_exponent=float(c['path_loss_exponent']),
            reference_distance_m=float(c.get('reference_distance_m', 1.0))
        )
    return Receiver(
        receiver_id=str(entry['id']),
        x=float(entry['x']),
        y=float(entry['y']),
        calibration=calibration
    )
