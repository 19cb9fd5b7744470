"""
Discretized room grid used as the candidate set for every position estimate.
"""

import json
import logging
import math
import threading
from typing import List, Optional, Tuple

import numpy as np

from packages.datatypes.datatypes import GRANULARITY_DEFAULT, GridCell, RoomBounds
from packages.datatypes.errors import InvalidBoundsError, InvalidGranularityError

logger = logging.getLogger(__name__)

# Tolerance in units of steps so that 0.3 / 0.1 does not grow an extra step
STEP_EPSILON = 1e-9


def _axis_values(start: float, stop: float, granularity: float) -> List[float]:
    """Inclusive sample points along one axis, computed by index to avoid drift."""
    n_steps = int(math.ceil((stop - start) / granularity - STEP_EPSILON))
    return [min(start + i * granularity, stop) for i in range(n_steps + 1)]


def validate(bounds: RoomBounds, granularity: float):
    """
    Check grid parameters.

    Raises:
        InvalidBoundsError: If x_from >= x_to or y_from >= y_to
        InvalidGranularityError: If granularity is not a positive finite number
    """
    values = (bounds.x_from, bounds.x_to, bounds.y_from, bounds.y_to)
    if not all(math.isfinite(v) for v in values):
        raise InvalidBoundsError(f"Bounds must be finite, got {bounds}")
    if bounds.x_from >= bounds.x_to or bounds.y_from >= bounds.y_to:
        raise InvalidBoundsError(
            f"Expected x_from < x_to and y_from < y_to, got {bounds}"
        )
    if not isinstance(granularity, (int, float)) or not math.isfinite(granularity) or granularity <= 0:
        raise InvalidGranularityError(f"Granularity must be > 0, got {granularity!r}")


def generate(bounds: RoomBounds, granularity: float = GRANULARITY_DEFAULT) -> Tuple[GridCell, ...]:
    """
    Generate the ordered grid cells for a room.

    Cells are ordered x ascending (outer) then y ascending (inner). Both bounds
    are always included; the last step is clamped to the upper bound when the
    span is not a multiple of the granularity.

    Args:
        bounds: Room extent in meters
        granularity: Spacing between adjacent cells in meters

    Returns:
        Tuple of new GridCell objects, all with weight 0.0
    """
    validate(bounds, granularity)
    xs = _axis_values(bounds.x_from, bounds.x_to, granularity)
    ys = _axis_values(bounds.y_from, bounds.y_to, granularity)
    return tuple(GridCell(x, y) for x in xs for y in ys)


class GridModel:
    """
    Owns the cell sequence of one room.

    `lock` guards both the cell sequence and the per-cell weights. Writers
    (the localization algorithm, regeneration) hold it for the whole update so
    readers never observe a half-written state.
    """

    def __init__(self, bounds: RoomBounds, granularity: float = GRANULARITY_DEFAULT):
        self.lock = threading.RLock()
        self._bounds = bounds
        self._granularity = granularity
        self._cells: Tuple[GridCell, ...] = ()
        self._coordinates: Optional[np.ndarray] = None
        self.regenerate(bounds, granularity)

    @property
    def bounds(self) -> RoomBounds:
        return self._bounds

    @property
    def granularity(self) -> float:
        return self._granularity

    @property
    def cells(self) -> Tuple[GridCell, ...]:
        """Current cell sequence (the tuple itself is never mutated)."""
        with self.lock:
            return self._cells

    @property
    def coordinates(self) -> np.ndarray:
        """Read-only (N, 2) array of cell positions in grid order."""
        with self.lock:
            return self._coordinates

    def __len__(self) -> int:
        return len(self.cells)

    def regenerate(self, bounds: RoomBounds, granularity: float):
        """
        Replace the whole cell set. The new sequence is built before taking
        the lock, so a failure leaves the previous grid untouched.
        """
        cells = generate(bounds, granularity)
        coordinates = np.array([(c.x, c.y) for c in cells], dtype=float)
        coordinates.setflags(write=False)

        with self.lock:
            self._bounds = bounds
            self._granularity = granularity
            self._cells = cells
            self._coordinates = coordinates

        logger.info(json.dumps({
            "event": "grid_generated",
            "n_cells": len(cells),
            "granularity": granularity,
            "bounds": [bounds.x_from, bounds.x_to, bounds.y_from, bounds.y_to]
        }))

    def apply_weights(self, weights: np.ndarray):
        """Write one weight per cell. Caller must hold `lock`."""
        cells = self._cells
        if len(weights) != len(cells):
            raise ValueError(f"Expected {len(cells)} weights, got {len(weights)}")
        for cell, weight in zip(cells, weights):
            cell.weight = float(weight)

    def weights(self) -> Tuple[float, ...]:
        """Consistent copy of all current weights in grid order."""
        with self.lock:
            return tuple(c.weight for c in self._cells)

    def snapshot(self) -> Tuple[Tuple[float, float, float], ...]:
        """Consistent (x, y, weight) copy of every cell, for display refreshes."""
        with self.lock:
            return tuple((c.x, c.y, c.weight) for c in self._cells)

    def nearest_cell(self, x: float, y: float) -> GridCell:
        """Cell closest to a point; ties resolved by grid order."""
        with self.lock:
            d2 = np.sum((self._coordinates - np.array([x, y])) ** 2, axis=1)
            return self._cells[int(np.argmin(d2))]
