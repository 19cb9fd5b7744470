"""
Error taxonomy for the localization pipeline.

Configuration errors (bounds, granularity, map definitions) and state machine
violations propagate to the caller. Per-batch and per-cycle errors are caught
by the processor, logged, and counted.
"""


class LocalizationError(Exception):
    """Base class for all localization errors."""


class InvalidBoundsError(LocalizationError, ValueError):
    """Room bounds are empty or inverted."""


class InvalidGranularityError(LocalizationError, ValueError):
    """Grid granularity is not a positive finite number."""


class InsufficientDataError(LocalizationError):
    """A batch is empty or references no registered receiver."""


class SourceReadError(LocalizationError):
    """Reading source failed during a pull cycle."""


class SinkWriteError(LocalizationError):
    """Result sink failed to accept an estimate."""


class InvalidStateTransitionError(LocalizationError):
    """Lifecycle call made in the wrong state."""


class ReceiverNotFoundError(LocalizationError, KeyError):
    """Receiver id is not registered."""


class MapSourceError(LocalizationError):
    """Room map or receiver definitions could not be loaded."""
