"""Bounded priority queue of events awaiting a commentary turn."""

import heapq
import itertools
import logging
from typing import List, Optional, Tuple

from ..core.events import QueuedEvent

logger = logging.getLogger(__name__)


class CommentaryQueue:
    """Priority structure ordered by (priority desc, enqueue_time asc).

    Capacity is a hard bound. When full, a new entry evicts the lowest
    priority (oldest among equals) entry only if it strictly outranks it;
    otherwise the new entry is refused. Mutated from the game loop only.
    """

    def __init__(self, capacity: int = 16):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._heap: List[list] = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)

    @property
    def is_full(self) -> bool:
        return len(self._heap) >= self.capacity

    def _push(self, entry: QueuedEvent) -> None:
        heapq.heappush(
            self._heap,
            [-entry.priority, entry.enqueue_time, next(self._counter), entry],
        )

    def offer(self, entry: QueuedEvent) -> Tuple[bool, Optional[QueuedEvent]]:
        """Insert ``entry`` respecting capacity.

        Returns:
            (accepted, evicted entry or None)
        """
        if not self.is_full:
            self._push(entry)
            return True, None

        weakest = self.min_entry()
        if weakest is None or entry.priority <= weakest.priority:
            return False, None

        self.remove(weakest)
        weakest.evicted = True
        self._push(entry)
        logger.debug(
            f"Queue full, evicted {weakest.event.label()} (p={weakest.priority}) "
            f"for {entry.event.label()} (p={entry.priority})"
        )
        return True, weakest

    def peek_next(self) -> Optional[QueuedEvent]:
        if not self._heap:
            return None
        return self._heap[0][3]

    def pop_next(self) -> Optional[QueuedEvent]:
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[3]

    def min_entry(self) -> Optional[QueuedEvent]:
        """Lowest-priority entry, oldest first among equal priorities."""
        if not self._heap:
            return None
        item = min(self._heap, key=lambda i: (-i[0], i[1], i[2]))
        return item[3]

    def find(self, dedup_key: str) -> Optional[QueuedEvent]:
        """Newest queued entry (by event timestamp) for ``dedup_key``."""
        matches = [item[3] for item in self._heap if item[3].dedup_key == dedup_key]
        if not matches:
            return None
        return max(matches, key=lambda entry: entry.event.timestamp)

    def remove(self, entry: QueuedEvent) -> bool:
        for index, item in enumerate(self._heap):
            if item[3] is entry:
                self._heap.pop(index)
                heapq.heapify(self._heap)
                return True
        return False

    def reprioritize(self, entry: QueuedEvent, priority: int) -> None:
        """Change the priority of an entry already in the queue."""
        for item in self._heap:
            if item[3] is entry:
                entry.priority = priority
                item[0] = -priority
                heapq.heapify(self._heap)
                return
        raise KeyError(entry.dedup_key)

    def resize(self, capacity: int) -> List[QueuedEvent]:
        """Change capacity, evicting the weakest entries if it shrank."""
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        evicted = []
        while len(self._heap) > capacity:
            weakest = self.min_entry()
            self.remove(weakest)
            weakest.evicted = True
            evicted.append(weakest)
        return evicted

    def snapshot(self) -> List[QueuedEvent]:
        """Entries in dispatch order, without modifying the queue."""
        return [item[3] for item in sorted(self._heap)]

    def clear(self) -> None:
        self._heap.clear()
