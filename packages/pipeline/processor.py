"""
Processor loop: pulls readings, runs the localization algorithm per batch and
forwards estimates to the result sink.
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from packages.datatypes.errors import (
    InsufficientDataError,
    InvalidStateTransitionError,
    SinkWriteError,
    SourceReadError,
)
from packages.localization_algos.grid.grid_model import GridModel
from packages.localization_algos.probability.algorithm import PositionLocalizationAlgorithm
from packages.receivers.registry import ReceiverRegistry
from .interfaces import ReadingSource, ResultSink

logger = logging.getLogger(__name__)

SOURCE = "source"
SINK = "sink"


@dataclass(frozen=True)
class ProcessorConfig:
    """Processor loop settings."""
    poll_interval_seconds: float = 0.05   # Wait after an empty pull
    max_consecutive_failures: int = 5     # Same-kind failures before escalation
    join_timeout_seconds: float = 10.0


class Processor:
    """
    Single consumer thread. Batches are formed, estimated and written one at
    a time, so estimates leave in the order their batches were pulled.
    """

    def __init__(
        self,
        source: ReadingSource,
        sink: ResultSink,
        algorithm: PositionLocalizationAlgorithm,
        grid: GridModel,
        receivers: ReceiverRegistry,
        config: ProcessorConfig = ProcessorConfig(),
        on_fatal: Optional[Callable[[str], None]] = None
    ):
        """
        Args:
            source: Where readings come from
            sink: Where estimates go
            algorithm: Localization algorithm run on every batch
            grid: Room grid shared with display readers
            receivers: Registered receivers
            config: Loop settings
            on_fatal: Called with a reason once the failure threshold is reached
        """
        if config.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        self.source = source
        self.sink = sink
        self.algorithm = algorithm
        self.grid = grid
        self.receivers = receivers
        self.config = config
        self.on_fatal = on_fatal

        self._stop_event = threading.Event()
        self._resume_event = threading.Event()
        self._drain = True
        self._thread: Optional[threading.Thread] = None

        self._sequence = 0
        self._consecutive_failures: Dict[str, int] = {SOURCE: 0, SINK: 0}
        self.fatal_reason: Optional[str] = None

        # Counters
        self.cycles = 0
        self.estimates_emitted = 0
        self.batches_dropped = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, paused: bool = False):
        """
        Start the processing thread. A paused processor pulls nothing until
        `resume()` is called.
        """
        if self.running:
            raise InvalidStateTransitionError("Processor is already running")
        self._stop_event.clear()
        if paused:
            self._resume_event.clear()
        else:
            self._resume_event.set()
        self._drain = True
        self.fatal_reason = None
        self._consecutive_failures = {SOURCE: 0, SINK: 0}
        self._thread = threading.Thread(target=self._process_readings, daemon=True)
        self._thread.start()

    def resume(self):
        self._resume_event.set()

    def stop(self, drain: bool = True):
        """
        Stop the processing thread. With `drain`, batches already buffered in
        the source are still processed before the thread exits.
        """
        self._drain = drain
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.config.join_timeout_seconds)
            if thread.is_alive():
                logger.error(json.dumps({
                    "event": "processor_join_timeout",
                    "timeout": self.config.join_timeout_seconds
                }))
                return  # Still alive: `running` stays True and start() is refused
        self._thread = None

    def run_cycle(self) -> bool:
        """
        One pull cycle.

        Returns:
            True if a non-empty batch was pulled, False otherwise
        """
        self.cycles += 1
        try:
            batch = self.source.pull()
        except Exception as e:
            self._record_failure(SOURCE, e if isinstance(e, SourceReadError) else SourceReadError(str(e)))
            return False
        self._consecutive_failures[SOURCE] = 0

        if not batch:
            return False

        self._sequence += 1
        sequence = self._sequence

        try:
            estimate = self.algorithm.estimate(batch, self.grid, self.receivers, sequence=sequence)
        except InsufficientDataError as e:
            self.batches_dropped += 1
            logger.warning(json.dumps({
                "event": "batch_dropped",
                "sequence": sequence,
                "n_readings": len(batch),
                "reason": str(e)
            }))
            return True
        except Exception as e:
            self.batches_dropped += 1
            logger.error(json.dumps({
                "event": "estimation_failed",
                "sequence": sequence,
                "error": str(e)
            }))
            return True

        try:
            self.sink.write(estimate)
        except Exception as e:
            self._record_failure(SINK, e if isinstance(e, SinkWriteError) else SinkWriteError(str(e)))
            return True
        self._consecutive_failures[SINK] = 0
        self.estimates_emitted += 1
        return True

    def _process_readings(self):
        """Main processing loop that runs in a separate thread."""
        while not self._resume_event.is_set() and not self._stop_event.is_set():
            self._resume_event.wait(self.config.poll_interval_seconds)

        logger.info(json.dumps({"event": "processor_started"}))

        while not self._stop_event.is_set():
            had_batch = self.run_cycle()
            if self.fatal_reason is not None:
                break
            if not had_batch:
                self._stop_event.wait(self.config.poll_interval_seconds)

        if self.fatal_reason is None and self._drain:
            drained = 0
            while self.fatal_reason is None and self.run_cycle():
                drained += 1
            if drained:
                logger.info(json.dumps({
                    "event": "processor_drained",
                    "batches": drained
                }))

        logger.info(json.dumps({
            "event": "processor_stopped",
            "estimates_emitted": self.estimates_emitted,
            "batches_dropped": self.batches_dropped
        }))

        if self.fatal_reason is not None and self.on_fatal is not None:
            self.on_fatal(self.fatal_reason)

    def _record_failure(self, kind: str, error: Exception):
        self._consecutive_failures[kind] += 1
        count = self._consecutive_failures[kind]

        logger.warning(json.dumps({
            "event": f"{kind}_failed",
            "error": str(error),
            "consecutive_failures": count
        }))

        if count >= self.config.max_consecutive_failures and self.fatal_reason is None:
            self.fatal_reason = (
                f"{count} consecutive {kind} failures, last: "
                f"{type(error).__name__}: {error}"
            )
            self._stop_event.set()
            logger.error(json.dumps({
                "event": "failure_threshold_reached",
                "kind": kind,
                "reason": self.fatal_reason
            }))
