"""
Probability based localization over the room grid.

Every grid cell is scored by how well its distances to the reporting receivers
match the distances derived from the batch. With predicted distance d_ij from
cell i to receiver j and observed distance d_j:

    L_i = -sum_j (d_ij - d_j)^2 / (2 * sigma^2)
    w_i = exp(L_i - max_k L_k)

so weights lie in (0, 1] and the most likely cell has weight 1.0.
"""

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from packages.datatypes.datatypes import PositionEstimate, Reading
from packages.datatypes.errors import InsufficientDataError
from packages.localization_algos.grid.grid_model import GridModel
from packages.receivers.registry import ReceiverRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlgorithmConfig:
    """Tuning for the probability based algorithm."""
    sigma_m: float = 1.0         # Std deviation of the distance residual (m)
    keep_weights: bool = False   # Attach the full weight vector to each estimate


class PositionLocalizationAlgorithm:
    """Interface of every localization algorithm used by the processor."""

    def estimate(
        self,
        batch: Sequence[Reading],
        grid: GridModel,
        receivers: ReceiverRegistry,
        sequence: int = 0
    ) -> PositionEstimate:
        raise NotImplementedError


class ProbabilityBasedAlgorithm(PositionLocalizationAlgorithm):
    """
    Weighted point model: a Gaussian likelihood on the distance residual,
    max-normalized, evaluated over all grid cells.
    """

    def __init__(self, config: AlgorithmConfig = AlgorithmConfig()):
        if config.sigma_m <= 0:
            raise ValueError(f"sigma_m must be > 0, got {config.sigma_m}")
        self.config = config

    def observed_distances(
        self,
        batch: Sequence[Reading],
        receivers: ReceiverRegistry
    ) -> Dict[str, float]:
        """
        Mean observed distance per known receiver, in first-seen order.
        Readings from unregistered receivers are ignored.
        """
        per_receiver: Dict[str, List[float]] = OrderedDict()
        for reading in batch:
            receiver = receivers.find(reading.receiver_id)
            if receiver is None:
                continue
            per_receiver.setdefault(receiver.receiver_id, []).append(
                receiver.observed_distance(reading.value)
            )
        return {rid: float(np.mean(values)) for rid, values in per_receiver.items()}

    def score(
        self,
        coordinates: np.ndarray,
        receiver_positions: np.ndarray,
        distances: np.ndarray
    ) -> np.ndarray:
        """Normalized weight per cell given receiver positions and observed distances."""
        predicted = cdist(coordinates, receiver_positions)  # (n_cells, n_receivers)
        residuals = predicted - distances[np.newaxis, :]
        log_likelihood = -np.sum(residuals ** 2, axis=1) / (2.0 * self.config.sigma_m ** 2)
        return np.exp(log_likelihood - np.max(log_likelihood))

    def estimate(
        self,
        batch: Sequence[Reading],
        grid: GridModel,
        receivers: ReceiverRegistry,
        sequence: int = 0
    ) -> PositionEstimate:
        """
        Choose the most likely grid cell for a batch of readings.

        Args:
            batch: Readings collected in one processing cycle
            grid: Room grid; cell weights are overwritten
            receivers: Registered receivers
            sequence: Batch sequence number carried into the estimate

        Returns:
            PositionEstimate of the cell with maximum weight. Ties go to the
            lowest x, then the lowest y.

        Raises:
            InsufficientDataError: If the batch is empty or no reading comes
                from a registered receiver
        """
        if not batch:
            raise InsufficientDataError("Empty batch")

        observed = self.observed_distances(batch, receivers)
        if not observed:
            raise InsufficientDataError(
                f"No registered receiver in batch of {len(batch)} readings"
            )

        receiver_ids: Tuple[str, ...] = tuple(observed)
        receiver_positions = receivers.positions(receiver_ids)
        distances = np.array([observed[rid] for rid in receiver_ids], dtype=float)
        timestamp = max(r.timestamp for r in batch)

        with grid.lock:
            coordinates = grid.coordinates
            weights = self.score(coordinates, receiver_positions, distances)
            grid.apply_weights(weights)

            best = np.flatnonzero(weights == weights.max())
            if len(best) > 1:
                # lexsort: last key is primary
                order = np.lexsort((coordinates[best, 1], coordinates[best, 0]))
                best = best[order]
            chosen = int(best[0])
            x, y = coordinates[chosen]
            weight_tuple = tuple(float(w) for w in weights) if self.config.keep_weights else None

        estimate = PositionEstimate(
            x=float(x),
            y=float(y),
            timestamp=timestamp,
            weight=float(weights[chosen]),
            receivers=receiver_ids,
            sequence=sequence,
            weights=weight_tuple
        )

        logger.debug(json.dumps({
            "event": "position_estimated",
            "sequence": sequence,
            "position": [estimate.x, estimate.y],
            "n_readings": len(batch),
            "receivers": list(receiver_ids)
        }))
        return estimate
