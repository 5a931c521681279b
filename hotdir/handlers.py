"""Handler capability invoked once per detected file."""

from __future__ import annotations

import abc
from pathlib import Path
from typing import Callable, Union


class FileHandler(abc.ABC):
    """Receives every file a watch loop detects.

    ``handle`` runs synchronously on the loop's thread, one file at a time.
    Any exception it raises is not caught: it propagates out of the loop and
    terminates it. Handlers that must survive bad input catch internally.
    """

    @abc.abstractmethod
    def handle(self, path: Path) -> None:
        """Process one newly created file."""


class NoopHandler(FileHandler):
    def handle(self, path: Path) -> None:
        return None


class CallableHandler(FileHandler):
    """Adapts a plain ``Path -> Any`` function; its return value is discarded."""

    def __init__(self, func: Callable[[Path], object]):
        self.func = func

    def handle(self, path: Path) -> None:
        self.func(path)

    def __repr__(self):
        return f"CallableHandler({getattr(self.func, '__name__', self.func)!r})"


HandlerLike = Union[FileHandler, Callable[[Path], object], None]


def as_handler(handler: HandlerLike) -> FileHandler:
    if handler is None:
        return NoopHandler()
    if isinstance(handler, FileHandler):
        return handler
    if callable(handler):
        return CallableHandler(handler)
    raise TypeError(f"handler must be a FileHandler or callable, got {type(handler).__name__}")
