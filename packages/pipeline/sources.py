"""
In-process reading sources: programmatic push and JSON-lines file replay.
"""

import json
import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from packages.datatypes.datatypes import Reading
from packages.datatypes.errors import SourceReadError
from packages.localization_algos.binning.reading_buffer import ReadingBuffer
from .interfaces import ReadingSource

logger = logging.getLogger(__name__)


class QueueReadingSource(ReadingSource):
    """Readings pushed by application code from any thread."""

    def __init__(self, buffer: Optional[ReadingBuffer] = None):
        self.buffer = buffer or ReadingBuffer()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        self._running = True

    def stop(self):
        self._running = False

    def push(self, reading: Reading) -> bool:
        """Offer a reading. Returns False if stopped or rejected by the buffer."""
        if not self._running:
            return False
        return self.buffer.add(reading)

    def pull(self) -> List[Reading]:
        return self.buffer.drain()


def parse_reading_line(line: str) -> Reading:
    """Parse one replay line: {"receiver_id": ..., "value": ..., "timestamp": ...}."""
    record = json.loads(line)
    return Reading(
        receiver_id=str(record['receiver_id']),
        value=float(record['value']),
        timestamp=float(record['timestamp'])
    )


class FileReadingSource(ReadingSource):
    """
    Replays recorded readings from a JSON-lines file on a background thread.
    Malformed lines are logged and skipped.
    """

    def __init__(
        self,
        path: Union[str, Path],
        interval_seconds: float = 0.0,
        buffer: Optional[ReadingBuffer] = None
    ):
        """
        Args:
            path: JSON-lines file, one reading per line
            interval_seconds: Delay between consecutive readings (0 replays as fast as possible)
            buffer: Buffer shared with the processor
        """
        self.path = Path(path)
        self.interval_seconds = interval_seconds
        self.buffer = buffer or ReadingBuffer()
        self.malformed_lines = 0

        self._stop_event = threading.Event()
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[Exception] = None
        self._file = None

    @property
    def finished(self) -> bool:
        """True once the whole file has been replayed."""
        return self._finished.is_set()

    def start(self):
        try:
            self._file = open(self.path, 'r', encoding='utf-8')
        except OSError as e:
            raise SourceReadError(f"Cannot open replay file {self.path}: {e}") from e

        self._stop_event.clear()
        self._finished.clear()
        self._thread = threading.Thread(target=self._replay, daemon=True)
        self._thread.start()

        logger.info(json.dumps({
            "event": "file_replay_started",
            "path": str(self.path)
        }))

    def stop(self):
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None

        logger.info(json.dumps({
            "event": "file_replay_stopped",
            "path": str(self.path),
            "malformed_lines": self.malformed_lines
        }))

    def pull(self) -> List[Reading]:
        if self._error is not None:
            error, self._error = self._error, None
            raise SourceReadError(f"Replay of {self.path} failed: {error}") from error
        return self.buffer.drain()

    def _replay(self):
        try:
            with self._file as f:
                for line_number, line in enumerate(f, start=1):
                    if self._stop_event.is_set():
                        return
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        reading = parse_reading_line(line)
                    except (ValueError, KeyError, TypeError) as e:
                        self.malformed_lines += 1
                        logger.warning(json.dumps({
                            "event": "malformed_reading_line",
                            "line": line_number,
                            "error": str(e)
                        }))
                        continue
                    self.buffer.add(reading)
                    if self.interval_seconds > 0:
                        self._stop_event.wait(self.interval_seconds)
            self._finished.set()
        except OSError as e:
            self._error = e
            logger.error(json.dumps({
                "event": "file_replay_failed",
                "path": str(self.path),
                "error": str(e)
            }))
