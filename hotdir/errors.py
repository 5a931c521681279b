"""Exception hierarchy for hotdir."""


class HotdirError(Exception):
    """Base exception for directory-watching failures."""


class SourceClosedError(HotdirError):
    """Raised when a notification source is used after it has been closed."""


class WatchInterruptedError(HotdirError):
    """Raised by a blocked take() when the source is interrupted."""


class RegistrationError(HotdirError):
    """Raised when a directory cannot be registered with a notification source."""


class LoopStateError(HotdirError):
    """Raised when a watch loop is driven from a state that does not allow it."""
