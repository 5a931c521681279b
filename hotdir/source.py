"""Directory-change notification source built on watchdog observers.

A ``NotificationSource`` turns watchdog's push-style callbacks into a
pull-style queue of ready ``WatchKey``s: the observer thread appends events
to the key of the directory they belong to and signals it, and a consumer
thread ``take()``s signalled keys, drains their events and ``reset()``s them.
"""

from __future__ import annotations

import collections
import contextlib
import dataclasses
import errno
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from .errors import RegistrationError, SourceClosedError, WatchInterruptedError
from .events import EventKind, WatchEvent

logger = logging.getLogger("hotdir.source")

DEFAULT_MAX_PENDING_EVENTS = 512


class WatchKey:
    """Registration of one directory with a ``NotificationSource``."""

    def __init__(self, source: "NotificationSource", directory: Path, kinds: frozenset):
        self.directory = directory
        self.kinds = kinds
        self._source = source
        self._events: List[WatchEvent] = []
        self._modified: Dict[Path, int] = {}  # name -> index of its pending MODIFIED event
        self._signalled = False
        self._valid = True
        self._cancelled = False
        self._watch = None

    @property
    def is_valid(self) -> bool:
        with self._source._cond:
            return self._valid

    def poll_events(self) -> List[WatchEvent]:
        """Remove and return the pending events, oldest first."""
        with self._source._cond:
            events, self._events = self._events, []
            self._modified = {}
        return events

    def reset(self) -> bool:
        """Re-arm the key after its events were consumed.

        Returns False when the key is no longer valid. Events that arrived
        while the key was being processed re-signal it straight away.
        """
        source = self._source
        with source._cond:
            if not self._valid:
                return False
            if self._signalled:
                if self._events:
                    source._ready.append(self)
                    source._cond.notify()
                else:
                    self._signalled = False
            return True

    def cancel(self):
        source = self._source
        with source._cond:
            if self._cancelled:
                return
            self._cancelled = True
            self._valid = False
            if source._keys.get(self.directory) is self:
                del source._keys[self.directory]
            watch, self._watch = self._watch, None
            closed = source._closed
        # unschedule takes the observer lock, which the dispatcher holds while
        # it waits on source._cond, so it must run outside the condition.
        if watch is not None and not closed:
            with contextlib.suppress(KeyError):
                source._observer.unschedule(watch)
        logger.debug("Cancelled watch on %s", self.directory)

    # called with source._cond held
    def _append(self, kind: EventKind, context: Path, max_pending: int):
        if len(self._events) >= max_pending:
            kind, context = EventKind.OVERFLOW, None
        last = self._events[-1] if self._events else None
        if last is not None and last.kind is kind and last.context == context:
            self._events[-1] = dataclasses.replace(last, count=last.count + 1)
            return
        if kind is EventKind.MODIFIED and context in self._modified:
            idx = self._modified[context]
            prev = self._events[idx]
            self._events[idx] = dataclasses.replace(prev, count=prev.count + 1)
            return
        if kind is EventKind.MODIFIED:
            self._modified[context] = len(self._events)
        elif context is not None:
            # a later modification belongs after this create/delete, not before it
            self._modified.pop(context, None)
        self._events.append(WatchEvent(kind, context))

    def __repr__(self):
        return f"WatchKey({str(self.directory)!r}, valid={self._valid})"


class _KeyEventHandler(FileSystemEventHandler):
    """Routes watchdog callbacks for one directory into its ``WatchKey``."""

    def __init__(self, source: "NotificationSource", key: WatchKey):
        self.source = source
        self.key = key

    def _child(self, raw_path) -> Optional[Path]:
        p = Path(os.fsdecode(raw_path))
        if p.parent != self.key.directory:
            return None
        return Path(p.name)

    def _is_self(self, raw_path) -> bool:
        return Path(os.fsdecode(raw_path)) == self.key.directory

    def on_created(self, event):
        name = self._child(event.src_path)
        if name is not None:
            self.source._post(self.key, EventKind.CREATED, name)

    def on_modified(self, event):
        name = self._child(event.src_path)
        if name is not None:
            self.source._post(self.key, EventKind.MODIFIED, name)

    def on_deleted(self, event):
        if self._is_self(event.src_path):
            self.source._invalidate(self.key)
            return
        name = self._child(event.src_path)
        if name is not None:
            self.source._post(self.key, EventKind.DELETED, name)

    def on_moved(self, event):
        if self._is_self(event.src_path):
            self.source._invalidate(self.key)
            return
        src = self._child(event.src_path)
        if src is not None:
            self.source._post(self.key, EventKind.DELETED, src)
        dest = self._child(event.dest_path)
        if dest is not None:
            self.source._post(self.key, EventKind.CREATED, dest)


class NotificationSource:
    """Pull-style directory watcher.

    ``lock`` must be held by anyone cancelling keys or closing the source so
    that a consumer's cancel never races an external close.
    """

    def __init__(self, max_pending_events: int = DEFAULT_MAX_PENDING_EVENTS,
                 observer_factory: Callable[[], object] = Observer):
        if max_pending_events <= 0:
            raise ValueError("max_pending_events must be positive")
        self.lock = threading.RLock()
        self._cond = threading.Condition(threading.Lock())
        self._max_pending = max_pending_events
        self._observer = observer_factory()
        self._started = False
        self._closed = False
        self._interrupts = 0
        self._keys: Dict[Path, WatchKey] = {}
        self._ready = collections.deque()

    @classmethod
    def from_config(cls, cfg: Dict) -> "NotificationSource":
        watch_cfg = cfg.get("watch", {})
        max_pending = int(watch_cfg.get("max_pending_events", DEFAULT_MAX_PENDING_EVENTS))
        if watch_cfg.get("observer", "native") == "polling":
            interval = float(watch_cfg.get("poll_interval_sec", 1.0))
            return cls(max_pending, observer_factory=lambda: PollingObserver(timeout=interval))
        return cls(max_pending)

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def register(self, path, kinds: Iterable[EventKind] = (EventKind.CREATED,)) -> WatchKey:
        """Watch the direct children of ``path`` for the given event kinds.

        Raises ``OSError`` if ``path`` is not an existing directory and
        ``RegistrationError`` if the observer refuses the watch.
        """
        kinds = frozenset(kinds)
        if EventKind.OVERFLOW in kinds:
            raise ValueError("OVERFLOW is always delivered and cannot be registered")
        directory = Path(path)
        if not directory.exists():
            raise FileNotFoundError(errno.ENOENT, "No such directory", str(directory))
        if not directory.is_dir():
            raise NotADirectoryError(errno.ENOTDIR, "Not a directory", str(directory))
        directory = directory.resolve()
        with self.lock:
            with self._cond:
                if self._closed:
                    raise SourceClosedError("notification source is closed")
                stale = self._keys.get(directory)
                if stale is not None and stale._valid:
                    stale.kinds = kinds
                    return stale
            if stale is not None:
                # the directory was removed and recreated; drop the dead watch first
                stale.cancel()
            key = WatchKey(self, directory, kinds)
            try:
                self._ensure_started()
                watch = self._observer.schedule(_KeyEventHandler(self, key), str(directory), recursive=False)
            except OSError:
                raise
            except Exception as exc:
                raise RegistrationError(f"Cannot watch {directory}: {exc}") from exc
            with self._cond:
                key._watch = watch
                self._keys[directory] = key
        logger.debug("Registered %s for %s", directory, sorted(k.value for k in kinds))
        return key

    def take(self, timeout: Optional[float] = None) -> Optional[WatchKey]:
        """Block until a key is signalled and return it.

        Returns None if ``timeout`` elapses first. Raises
        ``SourceClosedError`` once the source is closed and
        ``WatchInterruptedError`` after ``interrupt()``.
        """
        with self._cond:
            ready = self._cond.wait_for(
                lambda: self._closed or self._interrupts or self._ready, timeout=timeout
            )
            if self._closed:
                raise SourceClosedError("notification source is closed")
            if self._interrupts:
                self._interrupts -= 1
                raise WatchInterruptedError("wait for directory events was interrupted")
            if not ready:
                return None
            return self._ready.popleft()

    def poll(self) -> Optional[WatchKey]:
        return self.take(timeout=0)

    def interrupt(self):
        """Wake the next ``take()`` with ``WatchInterruptedError``."""
        with self._cond:
            self._interrupts += 1
            self._cond.notify_all()

    def close(self):
        with self.lock:
            with self._cond:
                if self._closed:
                    return
                self._closed = True
                for key in self._keys.values():
                    key._valid = False
                    key._watch = None
                self._keys.clear()
                self._ready.clear()
                self._cond.notify_all()
            if self._started:
                self._observer.stop()
                self._observer.join()
        logger.info("Notification source closed")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # called with self.lock held
    def _ensure_started(self):
        if not self._started:
            self._observer.start()
            self._started = True

    def _post(self, key: WatchKey, kind: EventKind, context: Path):
        with self._cond:
            if self._closed or not key._valid or kind not in key.kinds:
                return
            key._append(kind, context, self._max_pending)
            self._signal(key)

    def _invalidate(self, key: WatchKey):
        with self._cond:
            if not key._valid:
                return
            key._valid = False
            self._signal(key)
        logger.warning("Watched directory %s went away", key.directory)

    # called with self._cond held
    def _signal(self, key: WatchKey):
        if not key._signalled:
            key._signalled = True
            self._ready.append(key)
            self._cond.notify()
