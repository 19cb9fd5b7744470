"""
Explicit application context: everything the localization pipeline needs,
built once and passed to whoever drives it.
"""

import json
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from packages.datatypes.datatypes import RoomMap
from packages.datatypes.errors import InvalidStateTransitionError
from packages.localization_algos.grid.grid_model import GridModel
from packages.localization_algos.probability.algorithm import (
    AlgorithmConfig,
    PositionLocalizationAlgorithm,
    ProbabilityBasedAlgorithm,
)
from packages.pipeline.controller import PipelineController
from packages.pipeline.interfaces import ReadingSource, ResultSink
from packages.pipeline.processor import Processor, ProcessorConfig
from packages.receivers.map_sources import MapSource
from packages.receivers.registry import ReceiverRegistry

logger = logging.getLogger(__name__)


@dataclass
class LocalizationContext:
    """Room, receivers, grid, algorithm and pipeline of one running system."""
    room_map: RoomMap
    receivers: ReceiverRegistry
    grid: GridModel
    algorithm: PositionLocalizationAlgorithm
    processor: Processor
    controller: PipelineController

    def start(self):
        self.controller.start()

    def stop(self):
        self.controller.stop()

    def set_granularity(self, granularity: float):
        """Regenerate the grid. Only allowed while the pipeline is stopped."""
        if self.controller.running:
            raise InvalidStateTransitionError("Stop the pipeline before changing the grid")
        self.grid.regenerate(self.grid.bounds, granularity)


def build_context(
    map_source: MapSource,
    source: ReadingSource,
    sink: ResultSink,
    algorithm: Optional[PositionLocalizationAlgorithm] = None,
    algorithm_config: AlgorithmConfig = AlgorithmConfig(),
    processor_config: ProcessorConfig = ProcessorConfig(),
    granularity: Optional[float] = None,
    on_fatal: Optional[Callable[[str], None]] = None
) -> LocalizationContext:
    """
    Wire a complete pipeline for the room supplied by `map_source`.

    Args:
        map_source: Supplies room bounds and receivers
        source: Reading source
        sink: Result sink
        algorithm: Localization algorithm (probability based by default)
        algorithm_config: Used when `algorithm` is not given
        processor_config: Processor loop settings
        granularity: Overrides the room map's granularity
        on_fatal: Called with a reason when the pipeline stops on repeated failures

    Raises:
        MapSourceError: If the map cannot be loaded
        InvalidBoundsError, InvalidGranularityError: If the grid cannot be built
    """
    room_map = map_source.load_room_map()
    receivers = ReceiverRegistry(room_map.receivers)
    grid = GridModel(room_map.bounds, granularity if granularity is not None else room_map.granularity)
    algorithm = algorithm or ProbabilityBasedAlgorithm(algorithm_config)

    processor = Processor(
        source=source,
        sink=sink,
        algorithm=algorithm,
        grid=grid,
        receivers=receivers,
        config=processor_config
    )
    controller = PipelineController(
        source=source,
        processor=processor,
        sink=sink,
        receivers=receivers,
        on_fatal=on_fatal
    )

    logger.info(json.dumps({
        "event": "context_built",
        "room": room_map.title,
        "n_receivers": len(receivers),
        "n_cells": len(grid)
    }))

    return LocalizationContext(
        room_map=room_map,
        receivers=receivers,
        grid=grid,
        algorithm=algorithm,
        processor=processor,
        controller=controller
    )
