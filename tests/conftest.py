"""Shared fixtures and fakes for the pipeline tests."""

import threading
from collections import deque

import pytest

from packages.datatypes import Receiver, RoomBounds
from packages.localization_algos.grid import GridModel
from packages.localization_algos.probability import ProbabilityBasedAlgorithm
from packages.pipeline import ReadingSource, ResultSink
from packages.receivers import ReceiverRegistry


class ScriptedSource(ReadingSource):
    """Returns scripted batches in order, then empty lists. An Exception entry is raised."""

    def __init__(self, script=()):
        self.script = deque(script)
        self.events = None
        self.pulls = 0
        self.started = False
        self._lock = threading.Lock()

    def feed(self, *entries):
        with self._lock:
            self.script.extend(entries)

    def start(self):
        self.started = True
        if self.events is not None:
            self.events.append("source.start")

    def stop(self):
        self.started = False
        if self.events is not None:
            self.events.append("source.stop")

    def pull(self):
        with self._lock:
            self.pulls += 1
            if not self.script:
                return []
            entry = self.script.popleft()
        if isinstance(entry, Exception):
            raise entry
        return list(entry)


class RecordingSink(ResultSink):
    """Records written estimates. Raises queued exceptions on write."""

    def __init__(self, failures=()):
        self.estimates = []
        self.failures = deque(failures)
        self.events = None
        self.fail_on_start = None
        self.started = False

    def start(self):
        if self.events is not None:
            self.events.append("sink.start")
        if self.fail_on_start is not None:
            raise self.fail_on_start
        self.started = True

    def stop(self):
        self.started = False
        if self.events is not None:
            self.events.append("sink.stop")

    def write(self, estimate):
        if self.failures:
            raise self.failures.popleft()
        self.estimates.append(estimate)


class CountingAlgorithm(ProbabilityBasedAlgorithm):

    def __init__(self):
        super().__init__()
        self.calls = 0

    def estimate(self, batch, grid, receivers, sequence=0):
        self.calls += 1
        return super().estimate(batch, grid, receivers, sequence=sequence)


@pytest.fixture
def grid():
    return GridModel(RoomBounds(0.0, 1.0, 0.0, 1.0), 0.5)


@pytest.fixture
def receivers():
    return ReceiverRegistry([Receiver("a", 0.0, 0.0), Receiver("b", 1.0, 1.0)])


@pytest.fixture
def algorithm():
    return CountingAlgorithm()
