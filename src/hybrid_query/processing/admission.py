"""
Admission control.

Bounds the number of queries doing real work at once. A full gate
rejects immediately instead of queueing, so latency stays bounded under
load.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from hybrid_query.errors import CapacityExceededError

logger = logging.getLogger(__name__)


class AdmissionGate:
    """In-flight counter guarded by a lock; safe across threads and event loops."""

    def __init__(self, limit: int, retry_after: float = 1.0):
        if limit <= 0:
            raise ValueError("limit must be positive")
        self._limit = limit
        self._retry_after = retry_after
        self._in_flight = 0
        self._lock = threading.Lock()
        self.peak = 0
        self.rejected = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def try_acquire(self) -> bool:
        with self._lock:
            if self._in_flight >= self._limit:
                self.rejected += 1
                return False
            self._in_flight += 1
            self.peak = max(self.peak, self._in_flight)
            return True

    def release(self) -> None:
        with self._lock:
            if self._in_flight == 0:
                raise RuntimeError("AdmissionGate released more times than acquired")
            self._in_flight -= 1

    @contextmanager
    def slot(self) -> Iterator[None]:
        """
        Hold one slot for the duration of the block.

        Raises:
            CapacityExceededError: If the gate is full
        """
        if not self.try_acquire():
            logger.warning(f"Admission rejected: {self._limit} queries already in flight")
            raise CapacityExceededError(
                f"Query capacity exceeded ({self._limit} in flight)",
                retry_after=self._retry_after,
            )
        try:
            yield
        finally:
            self.release()
