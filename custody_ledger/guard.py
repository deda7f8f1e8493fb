"""
Reentrancy Guard

Two-state guard (IDLE / IN_PROGRESS) that admits one top-level operation
at a time. Entry never blocks: a second entry while an operation is in
progress, whether from a callback on the same thread or from another
thread, is refused with ReentrancyRejected.
"""

from contextlib import contextmanager
from enum import Enum
from threading import Lock
from typing import Optional

from .errors import ReentrancyRejected


class GuardState(Enum):
    """States of the reentrancy guard"""
    IDLE = "idle"
    IN_PROGRESS = "in_progress"


class ReentrancyGuard:
    """Non-blocking mutual exclusion for ledger operations"""

    def __init__(self):
        self._lock = Lock()
        self._state = GuardState.IDLE
        self._operation: Optional[str] = None

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def operation(self) -> Optional[str]:
        """Name of the operation currently holding the guard"""
        return self._operation

    def acquire(self, operation: Optional[str] = None) -> None:
        """
        Move from IDLE to IN_PROGRESS

        Raises:
            ReentrancyRejected: If the guard is already IN_PROGRESS
        """
        # Check-and-set is a single non-blocking acquire
        if not self._lock.acquire(blocking=False):
            raise ReentrancyRejected(operation)
        self._state = GuardState.IN_PROGRESS
        self._operation = operation

    def release(self) -> None:
        """Return to IDLE"""
        if self._state != GuardState.IN_PROGRESS:
            raise RuntimeError("Cannot release a guard that is not in progress")
        self._state = GuardState.IDLE
        self._operation = None
        self._lock.release()

    @contextmanager
    def hold(self, operation: Optional[str] = None):
        """Hold the guard for the duration of the block; released on every exit path"""
        self.acquire(operation)
        try:
            yield self
        finally:
            self.release()
