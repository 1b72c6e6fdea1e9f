"""In-flight guards for comment mutations.

Each rendered comment allows a single outstanding mutation.  The guard uses a
non-blocking acquire -- if a request is already pending, the caller gets
False and drops the duplicate submission.
"""

from __future__ import annotations

import threading


class InFlightGuard:
    """Non-blocking single-holder lock with an observable pending flag."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operation: str | None = None

    def acquire(self, operation: str) -> bool:
        """Try to start *operation*.

        Returns True if the guard was acquired, False if already held.
        """
        if self._lock.acquire(blocking=False):
            self._operation = operation
            return True
        return False

    def release(self) -> None:
        """Release a guard taken with ``acquire``."""
        self._operation = None
        self._lock.release()

    @property
    def pending(self) -> bool:
        """True while a mutation is outstanding."""
        return self._operation is not None

    @property
    def operation(self) -> str | None:
        """Name of the outstanding mutation, or None."""
        return self._operation
