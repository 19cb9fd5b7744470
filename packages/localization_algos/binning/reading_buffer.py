"""
Thread-safe buffering of incoming readings between a source and the processor.
"""

import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

import numpy as np

from packages.datatypes.datatypes import Reading


@dataclass
class BufferMetrics:
    """Metrics for buffering and data quality."""
    late_drops: int = 0             # Readings older than max_age_seconds on arrival
    overflow_drops: int = 0         # Oldest readings evicted because the buffer was full
    rejected_readings: int = 0      # Readings rejected by filters
    total_readings: int = 0         # Readings successfully buffered
    readings_per_receiver: Dict[str, int] = field(default_factory=dict)
    rejection_reasons: Dict[str, int] = field(default_factory=dict)
    batches_drained: int = 0


class ReadingBuffer:
    """
    Accumulates readings from a producer thread until the processor drains
    them. One drain returns everything buffered so far, oldest first.
    """

    def __init__(
        self,
        max_readings: int = 10000,
        max_age_seconds: Optional[float] = None,
        outlier_threshold_sigma: Optional[float] = None,
        min_samples_for_outlier_detection: int = 5,
        history_per_receiver: int = 20,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the buffer.

        Args:
            max_readings: Capacity; the oldest reading is evicted when full
            max_age_seconds: Readings older than this on arrival are dropped (None disables)
            outlier_threshold_sigma: z-score above which a value is rejected (None disables)
            min_samples_for_outlier_detection: Accepted values needed per receiver before the outlier filter applies
            history_per_receiver: Accepted values remembered per receiver for the outlier filter
            clock: Time source, epoch seconds
        """
        if max_readings <= 0:
            raise ValueError(f"max_readings must be > 0, got {max_readings}")
        self.max_readings = max_readings
        self.max_age_seconds = max_age_seconds
        self.outlier_threshold_sigma = outlier_threshold_sigma
        self.min_samples_for_outlier_detection = min_samples_for_outlier_detection
        self.history_per_receiver = history_per_receiver
        self._clock = clock

        self._lock = threading.Lock()
        self._buffer: Deque[Reading] = deque()
        self._history: Dict[str, Deque[float]] = {}
        self.metrics = BufferMetrics()

    def add(self, reading: Reading) -> bool:
        """
        Buffer a reading after validation.

        Returns:
            True if the reading was buffered, False if it was dropped or rejected
        """
        with self._lock:
            if self.max_age_seconds is not None and \
                    reading.timestamp < self._clock() - self.max_age_seconds:
                self.metrics.late_drops += 1
                return False

            is_valid, reason = self._validate(reading)
            if not is_valid:
                self.metrics.rejected_readings += 1
                self.metrics.rejection_reasons[reason] = \
                    self.metrics.rejection_reasons.get(reason, 0) + 1
                return False

            if len(self._buffer) >= self.max_readings:
                self._buffer.popleft()
                self.metrics.overflow_drops += 1

            self._buffer.append(reading)
            self.metrics.total_readings += 1
            self.metrics.readings_per_receiver[reading.receiver_id] = \
                self.metrics.readings_per_receiver.get(reading.receiver_id, 0) + 1

            history = self._history.setdefault(
                reading.receiver_id, deque(maxlen=self.history_per_receiver)
            )
            history.append(reading.value)
            return True

    def drain(self) -> List[Reading]:
        """Remove and return all buffered readings (possibly empty)."""
        with self._lock:
            batch = list(self._buffer)
            self._buffer.clear()
            if batch:
                self.metrics.batches_drained += 1
            return batch

    def clear(self):
        with self._lock:
            self._buffer.clear()
            self._history.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def get_metrics(self) -> BufferMetrics:
        """Get current buffer metrics."""
        return self.metrics

    def _validate(self, reading: Reading) -> Tuple[bool, str]:
        if not math.isfinite(reading.value):
            return False, "non_finite_value"
        if not reading.receiver_id:
            return False, "missing_receiver_id"
        return self._check_statistical_outlier(reading)

    def _check_statistical_outlier(self, reading: Reading) -> Tuple[bool, str]:
        """
        Compare the new value with the recent accepted values of the same
        receiver using a z-score.
        """
        if self.outlier_threshold_sigma is None:
            return True, ""

        recent = self._history.get(reading.receiver_id)
        if recent is None or len(recent) < self.min_samples_for_outlier_detection:
            return True, ""  # Not enough data, accept reading

        values = np.array(recent, dtype=float)
        mean_value = np.mean(values)
        std_value = np.std(values)

        if std_value < 1e-6:
            # Tight cluster: only reject large jumps
            if abs(reading.value - mean_value) > 10.0:
                return False, f"outlier_from_tight_cluster_{reading.receiver_id}"
            return True, ""

        z_score = abs(reading.value - mean_value) / std_value
        if z_score > self.outlier_threshold_sigma:
            return False, f"statistical_outlier_{reading.receiver_id}"

        return True, ""
