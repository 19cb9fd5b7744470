"""Unit tests for the probability based localization algorithm."""

import math

import numpy as np
import pytest

from packages.datatypes import InsufficientDataError, PathLossModel, Reading, Receiver, RoomBounds
from packages.localization_algos.grid import GridModel
from packages.localization_algos.probability import AlgorithmConfig, ProbabilityBasedAlgorithm
from packages.receivers import ReceiverRegistry


@pytest.fixture
def unit_grid():
    return GridModel(RoomBounds(0.0, 1.0, 0.0, 1.0), 0.25)


@pytest.fixture
def diagonal_receivers():
    return ReceiverRegistry([Receiver("a", 0.0, 0.0), Receiver("b", 1.0, 1.0)])


@pytest.fixture
def algorithm():
    return ProbabilityBasedAlgorithm()


def readings(*pairs, timestamp=100.0):
    return [Reading(rid, value, timestamp + i) for i, (rid, value) in enumerate(pairs)]


class TestEstimate:

    def test_symmetric_receivers_choose_midpoint(self, algorithm, unit_grid, diagonal_receivers):
        estimate = algorithm.estimate(readings(("a", 0.5), ("b", 0.5)), unit_grid, diagonal_receivers)

        nearest = unit_grid.nearest_cell(0.5, 0.5)
        assert (estimate.x, estimate.y) == (nearest.x, nearest.y)
        assert estimate.weight == 1.0

    def test_symmetric_receivers_on_coarse_grid(self, algorithm, diagonal_receivers):
        grid = GridModel(RoomBounds(0.0, 1.0, 0.0, 1.0), 0.5)

        estimate = algorithm.estimate(readings(("a", 0.5), ("b", 0.5)), grid, diagonal_receivers)

        assert (estimate.x, estimate.y) == (0.5, 0.5)

    def test_exact_distances_recover_position(self, algorithm):
        model = PathLossModel(tx_power_dbm=-59.0, path_loss_exponent=2.0)
        corners = [("r0", 0.0, 0.0), ("r1", 4.0, 0.0), ("r2", 4.0, 3.0), ("r3", 0.0, 3.0)]
        receivers = ReceiverRegistry([Receiver(rid, x, y, model) for rid, x, y in corners])
        grid = GridModel(RoomBounds(0.0, 4.0, 0.0, 3.0), 0.5)
        target = (1.0, 2.5)

        batch = readings(*[
            (rid, model.rssi_at(math.hypot(target[0] - x, target[1] - y)))
            for rid, x, y in corners
        ])
        estimate = algorithm.estimate(batch, grid, receivers)

        assert (estimate.x, estimate.y) == target
        assert estimate.receivers == ("r0", "r1", "r2", "r3")

    def test_ties_go_to_lowest_x_then_y(self, algorithm):
        grid = GridModel(RoomBounds(0.0, 1.0, 0.0, 1.0), 0.5)
        receivers = ReceiverRegistry([Receiver("c", 0.5, 0.5)])

        # (0, 0.5), (0.5, 0), (0.5, 1) and (1, 0.5) are all exactly 0.5 away
        estimate = algorithm.estimate(readings(("c", 0.5)), grid, receivers)

        assert (estimate.x, estimate.y) == (0.0, 0.5)
        tied = [c for c in grid.cells if c.weight == 1.0]
        assert len(tied) == 4

    def test_duplicate_readings_are_averaged(self, algorithm, unit_grid, diagonal_receivers):
        single = algorithm.estimate(readings(("a", 0.5), ("b", 0.5)), unit_grid, diagonal_receivers)
        averaged = algorithm.estimate(
            readings(("a", 0.4), ("a", 0.6), ("b", 0.3), ("b", 0.7)), unit_grid, diagonal_receivers
        )

        assert (averaged.x, averaged.y) == (single.x, single.y)

    def test_unknown_receivers_ignored(self, algorithm, unit_grid, diagonal_receivers):
        estimate = algorithm.estimate(
            readings(("ghost", 3.0), ("a", 0.5), ("b", 0.5)), unit_grid, diagonal_receivers
        )

        assert estimate.receivers == ("a", "b")
        assert (estimate.x, estimate.y) == (0.5, 0.5)

    def test_timestamp_and_sequence(self, algorithm, unit_grid, diagonal_receivers):
        batch = [Reading("a", 0.5, 12.0), Reading("b", 0.5, 15.0), Reading("a", 0.5, 13.0)]

        estimate = algorithm.estimate(batch, unit_grid, diagonal_receivers, sequence=7)

        assert estimate.timestamp == 15.0
        assert estimate.sequence == 7

    def test_idempotent(self, algorithm, unit_grid, diagonal_receivers):
        batch = readings(("a", 0.3), ("b", 1.1))

        first = algorithm.estimate(batch, unit_grid, diagonal_receivers)
        first_weights = unit_grid.weights()
        second = algorithm.estimate(batch, unit_grid, diagonal_receivers)

        assert first == second
        assert unit_grid.weights() == first_weights


class TestWeights:

    def test_weights_normalized(self, algorithm, unit_grid, diagonal_receivers):
        algorithm.estimate(readings(("a", 0.2), ("b", 0.9)), unit_grid, diagonal_receivers)
        weights = np.array(unit_grid.weights())

        assert np.all(weights > 0.0)
        assert np.all(weights <= 1.0)
        assert weights.max() == 1.0

    def test_chosen_cell_carries_max_weight(self, algorithm, unit_grid, diagonal_receivers):
        estimate = algorithm.estimate(readings(("a", 0.2), ("b", 0.9)), unit_grid, diagonal_receivers)

        best = max(unit_grid.cells, key=lambda c: c.weight)
        assert (best.x, best.y) == (estimate.x, estimate.y)

    def test_weights_attached_when_requested(self, unit_grid, diagonal_receivers):
        algorithm = ProbabilityBasedAlgorithm(AlgorithmConfig(keep_weights=True))

        estimate = algorithm.estimate(readings(("a", 0.5), ("b", 0.5)), unit_grid, diagonal_receivers)

        assert estimate.weights == unit_grid.weights()
        assert len(estimate.weights) == len(unit_grid)

    def test_weights_not_attached_by_default(self, algorithm, unit_grid, diagonal_receivers):
        estimate = algorithm.estimate(readings(("a", 0.5), ("b", 0.5)), unit_grid, diagonal_receivers)

        assert estimate.weights is None

    def test_closer_fit_scores_higher(self, algorithm):
        coordinates = np.array([[0.0, 0.0], [1.0, 0.0], [2.0, 0.0]])
        weights = algorithm.score(coordinates, np.array([[0.0, 0.0]]), np.array([1.0]))

        assert weights[1] == 1.0
        assert weights[0] == pytest.approx(weights[2])
        assert weights[0] < 1.0

    def test_invalid_sigma(self):
        with pytest.raises(ValueError):
            ProbabilityBasedAlgorithm(AlgorithmConfig(sigma_m=0.0))


class TestInsufficientData:

    def test_empty_batch(self, algorithm, unit_grid, diagonal_receivers):
        with pytest.raises(InsufficientDataError):
            algorithm.estimate([], unit_grid, diagonal_receivers)

    def test_no_matching_receiver(self, algorithm, unit_grid, diagonal_receivers):
        with pytest.raises(InsufficientDataError):
            algorithm.estimate(readings(("x", 0.5), ("y", 0.5)), unit_grid, diagonal_receivers)

    def test_empty_registry(self, algorithm, unit_grid):
        with pytest.raises(InsufficientDataError):
            algorithm.estimate(readings(("a", 0.5)), unit_grid, ReceiverRegistry())
