"""
Core datatypes for RSSI room localization.
Everything except GridCell.weight is immutable once created.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

GRANULARITY_DEFAULT = 0.25  # meters between adjacent grid points


@dataclass(frozen=True)
class RoomBounds:
    """Rectangular room extent in meters."""
    x_from: float
    x_to: float
    y_from: float
    y_to: float

    @property
    def width(self) -> float:
        return self.x_to - self.x_from

    @property
    def height(self) -> float:
        return self.y_to - self.y_from

    def contains(self, x: float, y: float) -> bool:
        return self.x_from <= x <= self.x_to and self.y_from <= y <= self.y_to


class GridCell:
    """
    One candidate position of the room grid.
    Position is fixed at construction; weight is rewritten on every estimation pass.
    """

    __slots__ = ('_x', '_y', 'weight')

    def __init__(self, x: float, y: float, weight: float = 0.0):
        self._x = x
        self._y = y
        self.weight = weight

    @property
    def x(self) -> float:
        return self._x

    @property
    def y(self) -> float:
        return self._y

    def __eq__(self, other):
        if not isinstance(other, GridCell):
            return NotImplemented
        return self._x == other._x and self._y == other._y and self.weight == other.weight

    def __hash__(self):
        return hash((self._x, self._y))

    def __repr__(self):
        return f"GridCell(x={self._x!r}, y={self._y!r}, weight={self.weight!r})"


@dataclass(frozen=True)
class PathLossModel:
    """
    Log-distance path loss calibration for one receiver.
    rssi(d) = tx_power_dbm - 10 * n * log10(d / d0)
    """
    tx_power_dbm: float = -59.0       # RSSI measured at the reference distance
    path_loss_exponent: float = 2.0   # Environment factor n
    reference_distance_m: float = 1.0

    def distance_from_rssi(self, rssi_dbm: float) -> float:
        """Estimate distance in meters from an RSSI value."""
        exponent = (self.tx_power_dbm - rssi_dbm) / (10.0 * self.path_loss_exponent)
        return self.reference_distance_m * math.pow(10.0, exponent)

    def rssi_at(self, distance_m: float) -> float:
        """Expected RSSI at a given distance (inverse of distance_from_rssi)."""
        distance_m = max(distance_m, 1e-3)
        return self.tx_power_dbm - 10.0 * self.path_loss_exponent * math.log10(
            distance_m / self.reference_distance_m
        )


@dataclass(frozen=True)
class Receiver:
    """Fixed reference receiver with a known position in the room (meters)."""
    receiver_id: str
    x: float
    y: float
    calibration: Optional[PathLossModel] = None  # None: reading values are distances in meters

    def observed_distance(self, value: float) -> float:
        """Convert a reading value reported by this receiver to a distance in meters."""
        if self.calibration is None:
            return float(value)
        return self.calibration.distance_from_rssi(value)


@dataclass(frozen=True)
class Reading:
    """Single signal observation from one receiver."""
    receiver_id: str
    value: float      # RSSI (dBm) for calibrated receivers, otherwise distance (m)
    timestamp: float  # Epoch seconds


@dataclass(frozen=True)
class PositionEstimate:
    """Most likely grid cell for one batch of readings."""
    x: float
    y: float
    timestamp: float                  # Latest reading timestamp of the batch
    weight: float                     # Normalized weight of the chosen cell
    receivers: Tuple[str, ...]        # Receivers that contributed
    sequence: int = 0                 # Batch sequence number assigned by the processor
    weights: Optional[Tuple[float, ...]] = field(default=None, repr=False)  # Per-cell weights, grid order

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "x": self.x,
            "y": self.y,
            "timestamp": self.timestamp,
            "weight": self.weight,
            "receivers": list(self.receivers),
        }


@dataclass(frozen=True)
class RoomMap:
    """Room definition as supplied by a map source."""
    title: str
    bounds: RoomBounds
    receivers: Tuple[Receiver, ...] = ()
    granularity: float = GRANULARITY_DEFAULT
