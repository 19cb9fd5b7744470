"""
Core localization algorithms package.
"""

from .grid.grid_model import GridModel, generate
from .binning.reading_buffer import ReadingBuffer, BufferMetrics
from .probability.algorithm import (
    AlgorithmConfig,
    PositionLocalizationAlgorithm,
    ProbabilityBasedAlgorithm
)

__all__ = [
    'GridModel',
    'generate',
    'ReadingBuffer',
    'BufferMetrics',
    'AlgorithmConfig',
    'PositionLocalizationAlgorithm',
    'ProbabilityBasedAlgorithm'
]
