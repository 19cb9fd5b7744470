"""
Registry of fixed receivers used as reference points for localization.
"""

import json
import logging
import threading
from typing import Dict, Iterable, List, Optional

import numpy as np

from packages.datatypes.datatypes import Receiver
from packages.datatypes.errors import InvalidStateTransitionError, ReceiverNotFoundError

logger = logging.getLogger(__name__)


class ReceiverRegistry:
    """
    Known receivers keyed by id, in registration order.
    Read-only while frozen; the pipeline controller freezes it for as long as
    it is running.
    """

    def __init__(self, receivers: Optional[Iterable[Receiver]] = None):
        self._lock = threading.Lock()
        self._receivers: Dict[str, Receiver] = {}
        self._frozen = False
        for receiver in receivers or ():
            self.add(receiver)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self):
        with self._lock:
            self._frozen = True

    def unfreeze(self):
        with self._lock:
            self._frozen = False

    def add(self, receiver: Receiver):
        """Register a receiver. Replacing an existing id is not allowed."""
        with self._lock:
            self._check_mutable()
            if receiver.receiver_id in self._receivers:
                raise ValueError(f"Receiver {receiver.receiver_id} already registered")
            self._receivers[receiver.receiver_id] = receiver

        logger.debug(json.dumps({
            "event": "receiver_registered",
            "receiver_id": receiver.receiver_id,
            "position": [receiver.x, receiver.y]
        }))

    def remove(self, receiver_id: str) -> Receiver:
        with self._lock:
            self._check_mutable()
            if receiver_id not in self._receivers:
                raise ReceiverNotFoundError(f"Receiver {receiver_id} not found")
            return self._receivers.pop(receiver_id)

    def get(self, receiver_id: str) -> Receiver:
        """Get a receiver by id."""
        with self._lock:
            if receiver_id not in self._receivers:
                raise ReceiverNotFoundError(f"Receiver {receiver_id} not found")
            return self._receivers[receiver_id]

    def find(self, receiver_id: str) -> Optional[Receiver]:
        with self._lock:
            return self._receivers.get(receiver_id)

    def all(self) -> List[Receiver]:
        """Copy of all receivers in registration order."""
        with self._lock:
            return list(self._receivers.values())

    def positions(self, receiver_ids: Iterable[str]) -> np.ndarray:
        """(K, 2) array of positions for the given receiver ids."""
        with self._lock:
            return np.array(
                [(self._receivers[rid].x, self._receivers[rid].y) for rid in receiver_ids],
                dtype=float
            ).reshape(-1, 2)

    def __contains__(self, receiver_id) -> bool:
        with self._lock:
            return receiver_id in self._receivers

    def __len__(self) -> int:
        with self._lock:
            return len(self._receivers)

    def _check_mutable(self):
        if self._frozen:
            raise InvalidStateTransitionError(
                "Receiver set cannot change while the pipeline is running"
            )
