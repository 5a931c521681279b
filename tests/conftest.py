"""Shared fixtures: an in-memory notification source for loop tests."""

from __future__ import annotations

import collections
import errno
import threading
import time
from pathlib import Path

import pytest
from watchdog.observers.polling import PollingObserver

from hotdir.errors import SourceClosedError, WatchInterruptedError
from hotdir.events import EventKind, WatchEvent
from hotdir.source import NotificationSource


class OwnedLock:
    """Re-entrant lock that can tell whether the calling thread holds it."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._owner: int | None = None
        self._depth = 0

    def __enter__(self) -> OwnedLock:
        self._lock.acquire()
        self._owner = threading.get_ident()
        self._depth += 1
        return self

    def __exit__(self, *exc: object) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._owner = None
        self._lock.release()

    def held_by_current_thread(self) -> bool:
        return self._owner == threading.get_ident()


class FakeKey:
    def __init__(self, source: FakeSource, directory: Path) -> None:
        self.directory = directory
        self._source = source
        self.batches: collections.deque[list[WatchEvent]] = collections.deque()
        self.reset_results: collections.deque[bool] = collections.deque()
        self.reset_count = 0
        self.cancel_count = 0
        self.cancelled_under_lock: list[bool] = []

    def poll_events(self) -> list[WatchEvent]:
        return self.batches.popleft() if self.batches else []

    def reset(self) -> bool:
        self.reset_count += 1
        return self.reset_results.popleft() if self.reset_results else True

    def cancel(self) -> None:
        self.cancel_count += 1
        self.cancelled_under_lock.append(self._source.lock.held_by_current_thread())


class FakeSource:
    """Scripted source: ``deliver`` queues a batch, ``take`` hands batches out in order."""

    def __init__(self) -> None:
        self.lock = OwnedLock()
        self._cond = threading.Condition()
        self._ready: collections.deque[FakeKey] = collections.deque()
        self._closed = False
        self._interrupted = False
        self.keys: dict[Path, FakeKey] = {}
        self.refuse: set[Path] = set()
        self.registered_kinds: dict[Path, tuple[EventKind, ...]] = {}
        self.take_count = 0

    def register(self, path: Path, kinds: tuple[EventKind, ...]) -> FakeKey:
        path = Path(path)
        if path in self.refuse:
            raise PermissionError(errno.EACCES, "Permission denied", str(path))
        key = FakeKey(self, path)
        self.keys[path] = key
        self.registered_kinds[path] = tuple(kinds)
        return key

    def deliver(self, directory: Path, *events: tuple[EventKind, str | None]) -> FakeKey:
        with self._cond:
            key = self.keys[Path(directory)]
            key.batches.append([
                WatchEvent(kind, Path(name) if name is not None else None) for kind, name in events
            ])
            self._ready.append(key)
            self._cond.notify_all()
        return key

    def take(self) -> FakeKey:
        with self._cond:
            self.take_count += 1
            self._cond.wait_for(lambda: self._closed or self._interrupted or self._ready)
            if self._closed:
                raise SourceClosedError("closed")
            if self._interrupted:
                self._interrupted = False
                raise WatchInterruptedError("interrupted")
            return self._ready.popleft()

    def interrupt(self) -> None:
        with self._cond:
            self._interrupted = True
            self._cond.notify_all()

    def close(self) -> None:
        with self.lock:
            with self._cond:
                self._closed = True
                self._cond.notify_all()


def wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def polling_source():
    """A real watchdog-backed source using a fast polling observer."""
    source = NotificationSource(observer_factory=lambda: PollingObserver(timeout=0.1))
    yield source
    source.close()
