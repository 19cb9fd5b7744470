"""
Lifecycle of the reading source, processor and result sink as one unit.
"""

import json
import logging
import threading
from enum import Enum
from typing import Callable, Optional

from packages.datatypes.errors import InvalidStateTransitionError
from packages.receivers.registry import ReceiverRegistry
from .interfaces import ReadingSource, ResultSink
from .processor import Processor

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class PipelineController:
    """
    State machine {STOPPED, RUNNING}.

    start: source, then processor (held until the sink is up), then sink.
    stop: source first (no new readings), processor drains, then sink.
    Calling start while RUNNING or stop while STOPPED raises
    InvalidStateTransitionError. When the processor reports a failure
    threshold, the pipeline is forced to STOPPED and `on_fatal` is called with
    the reason.
    """

    def __init__(
        self,
        source: ReadingSource,
        processor: Processor,
        sink: ResultSink,
        receivers: Optional[ReceiverRegistry] = None,
        on_fatal: Optional[Callable[[str], None]] = None
    ):
        self.source = source
        self.processor = processor
        self.sink = sink
        self.receivers = receivers if receivers is not None else processor.receivers
        self.on_fatal = on_fatal

        self._lock = threading.Lock()
        self._state_changed = threading.Condition(self._lock)
        self._state = PipelineState.STOPPED
        self.last_failure: Optional[str] = None
        self._generation = 0  # Incremented on every successful start

        self.processor.on_fatal = self._handle_fatal

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state is PipelineState.RUNNING

    def start(self):
        """Start acquisition, processing and output."""
        with self._lock:
            if self._state is not PipelineState.STOPPED:
                raise InvalidStateTransitionError(f"Cannot start pipeline in state {self._state.value}")

            self.receivers.freeze()
            started = []
            try:
                self.source.start()
                started.append(self.source)
                self.processor.start(paused=True)
                started.append(self.processor)
                self.sink.start()
            except Exception as e:
                logger.error(json.dumps({
                    "event": "pipeline_start_failed",
                    "error": str(e)
                }))
                for component in reversed(started):
                    self._stop_quietly(component)
                self.receivers.unfreeze()
                raise

            self._generation += 1
            self.processor.resume()
            self.last_failure = None
            self._set_state(PipelineState.RUNNING)

        logger.info(json.dumps({
            "event": "pipeline_started",
            "n_receivers": len(self.receivers),
            "n_cells": len(self.processor.grid)
        }))

    def stop(self):
        """Stop acquisition, drain buffered readings, then stop output."""
        with self._lock:
            if self._state is not PipelineState.RUNNING:
                raise InvalidStateTransitionError(f"Cannot stop pipeline in state {self._state.value}")
            self._teardown(drain=True)

        logger.info(json.dumps({
            "event": "pipeline_stopped",
            "estimates_emitted": self.processor.estimates_emitted
        }))

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the pipeline is STOPPED. Returns False on timeout."""
        with self._state_changed:
            return self._state_changed.wait_for(
                lambda: self._state is PipelineState.STOPPED, timeout
            )

    def _teardown(self, drain: bool):
        """Caller holds the lock."""
        self._stop_quietly(self.source)
        self.processor.stop(drain=drain)
        self._stop_quietly(self.sink)
        self.receivers.unfreeze()
        self._set_state(PipelineState.STOPPED)

    def _set_state(self, state: PipelineState):
        self._state = state
        self._state_changed.notify_all()

    def _stop_quietly(self, component):
        try:
            if isinstance(component, Processor):
                component.stop(drain=False)
            else:
                component.stop()
        except Exception as e:
            logger.error(json.dumps({
                "event": "component_stop_failed",
                "component": type(component).__name__,
                "error": str(e)
            }))

    def _handle_fatal(self, reason: str):
        # Runs on the processor thread, which must not join itself or wait
        # on a stop() that is joining it. The generation ties the reason to
        # the run that produced it.
        generation = self._generation
        threading.Thread(target=self._escalate, args=(reason, generation), daemon=True).start()

    def _escalate(self, reason: str, generation: int):
        with self._lock:
            if self._state is not PipelineState.RUNNING or generation != self._generation:
                logger.info(json.dumps({
                    "event": "stale_failure_ignored",
                    "reason": reason
                }))
                return
            self.last_failure = reason
            self._teardown(drain=False)

        logger.error(json.dumps({
            "event": "pipeline_failed",
            "reason": reason
        }))

        if self.on_fatal is not None:
            self.on_fatal(reason)
