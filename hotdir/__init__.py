"""Hot-directory watcher: hands newly created files to a handler on a background thread."""

from .errors import (
    HotdirError,
    LoopStateError,
    RegistrationError,
    SourceClosedError,
    WatchInterruptedError,
)
from .events import EventKind, WatchEvent
from .handlers import CallableHandler, FileHandler, NoopHandler, as_handler
from .latch import CountDownLatch
from .loader import DynamicLoader, LoopState, RegistrationReport, watch_directories
from .source import NotificationSource, WatchKey

__all__ = [
    "HotdirError",
    "LoopStateError",
    "RegistrationError",
    "SourceClosedError",
    "WatchInterruptedError",
    "EventKind",
    "WatchEvent",
    "CallableHandler",
    "FileHandler",
    "NoopHandler",
    "as_handler",
    "CountDownLatch",
    "DynamicLoader",
    "LoopState",
    "RegistrationReport",
    "watch_directories",
    "NotificationSource",
    "WatchKey",
]
