"""
Contracts between the pipeline and its external collaborators.
"""

from typing import List

from packages.datatypes.datatypes import PositionEstimate, Reading


class ReadingSource:
    """
    Asynchronous producer of readings.

    `pull` must not block for long: it returns whatever was acquired since the
    previous call, possibly an empty list. Readings acquired before `stop`
    remain available to `pull` so the processor can drain them.
    """

    def start(self):
        raise NotImplementedError

    def stop(self):
        raise NotImplementedError

    def pull(self) -> List[Reading]:
        raise NotImplementedError


class ResultSink:
    """Consumer of position estimates, called in emission order."""

    def start(self):
        raise NotImplementedError

    def stop(self):
        raise NotImplementedError

    def write(self, estimate: PositionEstimate):
        raise NotImplementedError
