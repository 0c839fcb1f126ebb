"""Cooperative cancellation for workflow runs."""

import threading
from typing import Optional


class CancellationToken:
    """Flag owned by one run and polled at level boundaries.

    Cancellation is cooperative: steps already in flight are allowed to
    finish; the run stops at the next check.
    """

    def __init__(self):
        self._cancelled = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._cancelled.is_set():
            self.reason = reason
            self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()
