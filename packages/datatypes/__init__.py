"""
Core datatypes and errors for room localization.
"""

from .datatypes import (
    GRANULARITY_DEFAULT,
    RoomBounds,
    GridCell,
    PathLossModel,
    Receiver,
    Reading,
    PositionEstimate,
    RoomMap,
)
from .errors import (
    LocalizationError,
    InvalidBoundsError,
    InvalidGranularityError,
    InsufficientDataError,
    SourceReadError,
    SinkWriteError,
    InvalidStateTransitionError,
    ReceiverNotFoundError,
    MapSourceError,
)

__all__ = [
    'GRANULARITY_DEFAULT',
    'RoomBounds',
    'GridCell',
    'PathLossModel',
    'Receiver',
    'Reading',
    'PositionEstimate',
    'RoomMap',
    'LocalizationError',
    'InvalidBoundsError',
    'InvalidGranularityError',
    'InsufficientDataError',
    'SourceReadError',
    'SinkWriteError',
    'InvalidStateTransitionError',
    'ReceiverNotFoundError',
    'MapSourceError',
]
