"""Countdown latch used to let external threads wait for processed batches."""

from __future__ import annotations

import threading
from typing import Optional


class CountDownLatch:
    """A one-shot countdown: waiters block until ``count_down`` reached zero."""

    def __init__(self, count: int):
        if count <= 0:
            raise ValueError(f"latch count must be positive, got {count}")
        self._count = count
        self._cond = threading.Condition()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def count_down(self):
        with self._cond:
            if self._count == 0:
                return
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the count reaches zero; False if ``timeout`` elapsed first."""
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)

    def __repr__(self):
        return f"CountDownLatch(count={self.count})"
