"""Background loop that hands newly created files to a handler.

A ``DynamicLoader`` registers a list of directories with a
``NotificationSource`` when it is built, and ``run()`` then consumes batches
of creation events, calling the handler once per created file and recording
every file it saw. ``run()`` blocks, so it belongs on its own thread;
``start()`` spawns one.

Stopping is cooperative: ``stop()`` only raises a flag that the loop checks
before each wait, so a loop blocked in ``source.take()`` keeps waiting until
the next batch arrives. Close or interrupt the source to wake it at once.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .config import load_configs
from .errors import LoopStateError, RegistrationError, SourceClosedError, WatchInterruptedError
from .events import EventKind
from .handlers import HandlerLike, as_handler
from .latch import CountDownLatch
from .source import NotificationSource

logger = logging.getLogger("hotdir.loader")


class LoopState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclasses.dataclass(slots=True)
class RegistrationReport:
    """Outcome of registering the loader's directories."""

    registered: List[Path] = dataclasses.field(default_factory=list)
    failed: Dict[Path, Exception] = dataclasses.field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class DynamicLoader:
    def __init__(self, source: NotificationSource, paths: Iterable, handler: HandlerLike = None,
                 latch: Optional[CountDownLatch] = None):
        self.source = source
        self.handler = as_handler(handler)
        self.latch = latch
        self.error: Optional[BaseException] = None
        self._files: List[Path] = []
        self._files_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stopped = False
        self._state = LoopState.CREATED
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.registration_report = self._register_directories(paths)

    @property
    def state(self) -> LoopState:
        with self._state_lock:
            return self._state

    @property
    def stopped(self) -> bool:
        with self._state_lock:
            return self._stopped

    @property
    def files(self) -> Tuple[Path, ...]:
        """Snapshot of every file handled so far, in handling order."""
        with self._files_lock:
            return tuple(self._files)

    @property
    def watched(self) -> Tuple[Path, ...]:
        return tuple(self.registration_report.registered)

    def start(self, name: Optional[str] = None, daemon: bool = True) -> threading.Thread:
        with self._state_lock:
            if self._state is not LoopState.CREATED or self._thread is not None:
                raise LoopStateError(f"loader already started (state={self._state.value})")
            self._thread = threading.Thread(target=self.run, name=name or "hotdir-loader", daemon=daemon)
        self._thread.start()
        return self._thread

    def run(self):
        with self._state_lock:
            if self._state is not LoopState.CREATED:
                raise LoopStateError(f"loader cannot run from state {self._state.value}")
            self._state = LoopState.RUNNING
        logger.info("Watching %d director%s", len(self.watched), "y" if len(self.watched) == 1 else "ies")
        key = None
        # only the stop flag and an invalid reset end the loop as STOPPED
        outcome = LoopState.FAILED
        try:
            while not self.stopped:
                try:
                    key = self.source.take()
                except (SourceClosedError, WatchInterruptedError) as exc:
                    self.error = exc
                    logger.info("Watch loop ending: %s", exc)
                    return
                self._dispatch(key)
                if self.latch is not None:
                    self.latch.count_down()
                if not key.reset():
                    logger.info("Registration for %s is no longer valid; stopping", key.directory)
                    break
            outcome = LoopState.STOPPED
        except BaseException as exc:
            self.error = exc
            logger.error("Watch loop terminated by %r", exc)
            raise
        finally:
            if key is not None:
                with self.source.lock:
                    key.cancel()
            with self._state_lock:
                self._state = outcome
            self._done.set()
            logger.info("Watch loop %s", outcome.value)

    def stop(self):
        """Ask the loop to exit before its next wait. Safe to call repeatedly."""
        with self._state_lock:
            self._stopped = True

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for ``run()`` to finish; False if ``timeout`` elapsed first."""
        return self._done.wait(timeout)

    def _dispatch(self, key):
        for event in key.poll_events():
            if event.kind is EventKind.OVERFLOW:
                logger.warning("Events lost for %s (overflow x%d)", key.directory, event.count)
                continue
            if event.kind is not EventKind.CREATED:
                continue
            path = key.directory / event.context
            logger.debug("Detected %s", path)
            self.handler.handle(path)
            with self._files_lock:
                self._files.append(path)

    def _register_directories(self, paths) -> RegistrationReport:
        report = RegistrationReport()
        if isinstance(paths, (str, bytes, os.PathLike)):
            paths = [paths]
        for p in paths:
            path = Path(os.fsdecode(p))
            try:
                key = self.source.register(path, (EventKind.CREATED,))
            except (OSError, RegistrationError) as exc:
                logger.warning("Not watching %s: %s", path, exc)
                report.failed[path] = exc
                continue
            # same form as the paths handed to the handler
            report.registered.append(key.directory)
        return report

    def __repr__(self):
        return f"DynamicLoader(watched={len(self.watched)}, files={len(self.files)}, state={self.state.value})"


def watch_directories(paths: Optional[Iterable] = None, handler: HandlerLike = None, cfg: Optional[Dict] = None,
                      latch: Optional[CountDownLatch] = None) -> DynamicLoader:
    """Build a source and loader from config and start the loop on a daemon thread.

    Shut down with ``loader.source.close()`` followed by ``loader.join()``.
    """
    cfg = cfg or load_configs()
    if paths is None:
        paths = cfg.get("watch", {}).get("paths", [])
    source = NotificationSource.from_config(cfg)
    loader = DynamicLoader(source, paths, handler=handler, latch=latch)
    if not loader.watched:
        logger.warning("No directories could be registered; the loop will idle until the source is closed")
    loader.start()
    return loader
