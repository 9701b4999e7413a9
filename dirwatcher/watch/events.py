# dirwatcher/watch/events.py

from enum import Enum
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class EventType(Enum):
    CREATED = "ENTRY_CREATE"
    DELETED = "ENTRY_DELETE"
    MODIFIED = "ENTRY_MODIFY"
    OVERFLOW = "OVERFLOW"


WATCHED_KINDS = (EventType.CREATED, EventType.DELETED, EventType.MODIFIED)


@dataclass
class WatchEvent:
    """Pending event for one watched directory.

    ``context`` is the entry name relative to the watched directory, or
    ``None`` for an overflow. ``count`` is the number of coalesced repeats.
    """
    event_type: EventType
    context: Optional[Path] = None
    count: int = 1

    @property
    def name(self) -> str:
        return self.event_type.value

    def __str__(self):
        if self.context is None:
            return f"{self.name} (x{self.count})"
        return f"{self.name}: {self.context}"
