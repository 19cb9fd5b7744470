"""
Result sinks: console logging, JSON-lines file, in-memory feed and fan-out.
"""

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, List, Optional, Sequence, Union

from packages.datatypes.datatypes import PositionEstimate
from packages.datatypes.errors import SinkWriteError
from .interfaces import ResultSink

logger = logging.getLogger(__name__)


class LoggingResultSink(ResultSink):
    """Emits every estimate as a structured log event."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def start(self):
        pass

    def stop(self):
        pass

    def write(self, estimate: PositionEstimate):
        logger.log(self.level, json.dumps({
            "event": "position_updated",
            **estimate.to_dict()
        }))


class JSONLinesResultSink(ResultSink):
    """Appends one JSON object per estimate to a file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._file = None
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            self._file = open(self.path, 'a', encoding='utf-8')

    def stop(self):
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def write(self, estimate: PositionEstimate):
        with self._lock:
            if self._file is None:
                raise SinkWriteError(f"{self.path} is not open")
            try:
                self._file.write(json.dumps(estimate.to_dict()) + "\n")
                self._file.flush()
            except OSError as e:
                raise SinkWriteError(f"Cannot write to {self.path}: {e}") from e


class EstimateFeed(ResultSink):
    """
    Exposes estimates to downstream consumers (displays, queries).

    Keeps a bounded history and calls subscribers on the writer's thread in
    emission order. A failing subscriber is logged and does not affect the
    others.
    """

    def __init__(self, max_history: int = 1000):
        self._lock = threading.Lock()
        self._history: Deque[PositionEstimate] = deque(maxlen=max_history)
        self._subscribers: List[Callable[[PositionEstimate], None]] = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        self._running = True

    def stop(self):
        self._running = False

    def subscribe(self, callback: Callable[[PositionEstimate], None]):
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[PositionEstimate], None]):
        with self._lock:
            self._subscribers.remove(callback)

    def write(self, estimate: PositionEstimate):
        with self._lock:
            self._history.append(estimate)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(estimate)
            except Exception as e:
                logger.error(json.dumps({
                    "event": "subscriber_failed",
                    "sequence": estimate.sequence,
                    "error": str(e)
                }))

    def latest(self) -> Optional[PositionEstimate]:
        with self._lock:
            return self._history[-1] if self._history else None

    def history(self) -> List[PositionEstimate]:
        """Retained estimates, oldest first."""
        with self._lock:
            return list(self._history)


class FanOutResultSink(ResultSink):
    """
    Writes each estimate to several sinks in order. Every sink gets the
    estimate even if an earlier one fails; the first failure is re-raised.
    """

    def __init__(self, sinks: Sequence[ResultSink]):
        self.sinks = list(sinks)

    def start(self):
        started = []
        try:
            for sink in self.sinks:
                sink.start()
                started.append(sink)
        except Exception:
            for sink in reversed(started):
                sink.stop()
            raise

    def stop(self):
        for sink in reversed(self.sinks):
            sink.stop()

    def write(self, estimate: PositionEstimate):
        first_error = None
        for sink in self.sinks:
            try:
                sink.write(estimate)
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            if isinstance(first_error, SinkWriteError):
                raise first_error
            raise SinkWriteError(str(first_error)) from first_error
