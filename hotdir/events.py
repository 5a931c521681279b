"""Event records delivered by a notification source."""

from __future__ import annotations

import dataclasses
import enum
from pathlib import Path
from typing import Optional


class EventKind(enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    OVERFLOW = "overflow"


@dataclasses.dataclass(frozen=True, slots=True)
class WatchEvent:
    """A single change reported for a watched directory.

    ``context`` is the entry name relative to the watched directory, or
    ``None`` for ``OVERFLOW`` events. ``count`` is greater than one when
    repeated events were coalesced.
    """

    kind: EventKind
    context: Optional[Path]
    count: int = 1

    def to_dict(self):
        return {
            "kind": self.kind.value,
            "context": str(self.context) if self.context is not None else None,
            "count": self.count,
        }
