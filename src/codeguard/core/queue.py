"""Priority queue for pending analysis requests.

Entries are ordered by priority tier (high > normal > low) and, within a
tier, by arrival. Queue depth is expected to be tens of entries, so the
linear insertion scan is fine.

Provides:
- Priority: Enum of priority tiers
- QueueEntry: Item wrapped with its tier and enqueue timestamp
- PriorityQueue: Ordered queue with cancellation support via remove()
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Iterator, TypeVar

T = TypeVar("T")


class Priority(str, Enum):
    """Scheduling tier for a request."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def coerce(cls, value: "Priority | str | None") -> "Priority":
        """Parse a tier name, falling back to NORMAL for unknown values."""
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.NORMAL


_PRIORITY_RANK = {Priority.HIGH: 3, Priority.NORMAL: 2, Priority.LOW: 1}


@dataclass
class QueueEntry(Generic[T]):
    """Queued item with its tier and enqueue timestamp."""

    item: T
    priority: Priority
    enqueued_at: float = field(default_factory=time.time)


class PriorityQueue(Generic[T]):
    """Priority-ordered FIFO queue.

    ``enqueue`` places an entry immediately before the first entry with a
    strictly lower tier, so an entry never overtakes one of equal tier.
    """

    def __init__(self) -> None:
        self._entries: list[QueueEntry[T]] = []

    def enqueue(self, item: T, priority: Priority | str = Priority.NORMAL) -> QueueEntry[T]:
        entry = QueueEntry(item=item, priority=Priority.coerce(priority))
        rank = entry.priority.rank

        for index, existing in enumerate(self._entries):
            if rank > existing.priority.rank:
                self._entries.insert(index, entry)
                return entry

        self._entries.append(entry)
        return entry

    def dequeue(self) -> T | None:
        """Remove and return the head item, or None when empty."""
        if not self._entries:
            return None
        return self._entries.pop(0).item

    def peek(self) -> T | None:
        return self._entries[0].item if self._entries else None

    def remove(self, predicate: Callable[[T], bool]) -> bool:
        """Delete the first entry whose item matches ``predicate``.

        Returns:
            True if an entry was removed
        """
        for index, entry in enumerate(self._entries):
            if predicate(entry.item):
                del self._entries[index]
                return True
        return False

    def is_empty(self) -> bool:
        return not self._entries

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries = []

    def entries(self) -> list[QueueEntry[T]]:
        """Snapshot of the queue in dequeue order."""
        return list(self._entries)

    def count_by_priority(self) -> dict[str, int]:
        counts = {p.value: 0 for p in Priority}
        for entry in self._entries:
            counts[entry.priority.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[T]:
        return (entry.item for entry in list(self._entries))
