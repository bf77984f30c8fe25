"""Event intake: deduplication, prioritisation and load shedding."""

import logging
from collections import deque
from dataclasses import dataclass, asdict
from typing import Deque, Dict, List, Optional

from ..core.events import GameEvent, QueuedEvent
from .queue import CommentaryQueue

logger = logging.getLogger(__name__)


@dataclass
class IntakeStats:
    """Counters for what happened to submitted events."""

    submitted: int = 0
    queued: int = 0
    merged: int = 0
    evicted: int = 0
    dropped_overflow: int = 0  # QueueOverflowDrop: queue full, not important enough
    dropped_recent: int = 0  # Same moment was already dispatched

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class EventIntake:
    """Accepts raw telemetry events and feeds the commentary queue.

    ``submit`` never blocks and never raises on load: an event that cannot be
    queued is dropped and counted.
    """

    def __init__(
        self,
        queue: CommentaryQueue,
        priorities: Dict[str, int],
        dedup_cooldown_s: float = 2.0,
        recent_window: int = 8,
    ):
        self.queue = queue
        self.priorities = dict(priorities)
        self.dedup_cooldown_s = dedup_cooldown_s
        self.stats = IntakeStats()
        self._recent: Deque[str] = deque(maxlen=recent_window)
        self._dispatched_at: Dict[str, float] = {}  # dedup_key -> event timestamp

    def priority_of(self, event: GameEvent) -> int:
        return self.priorities.get(event.priority_key, 0)

    def submit(self, event: GameEvent, now: Optional[float] = None) -> Optional[QueuedEvent]:
        """Queue or merge ``event``.

        Args:
            event: Raw event from telemetry
            now: Enqueue time on the game clock (defaults to the event timestamp)

        Returns:
            The queue entry now representing the event, or None if dropped
        """
        self.stats.submitted += 1
        enqueue_time = event.timestamp if now is None else now
        key = event.dedup_key

        dispatched_at = self._dispatched_at.get(key)
        if dispatched_at is not None and abs(event.timestamp - dispatched_at) < self.dedup_cooldown_s:
            self.stats.dropped_recent += 1
            logger.debug(f"Dropped {event.label()}: same moment already dispatched")
            return None

        pending = self.queue.find(key)
        if pending is not None and abs(event.timestamp - pending.event.timestamp) < self.dedup_cooldown_s:
            self._merge(pending, event)
            return pending

        entry = QueuedEvent(event=event, priority=self.priority_of(event), enqueue_time=enqueue_time)
        accepted, evicted = self.queue.offer(entry)
        if not accepted:
            self.stats.dropped_overflow += 1
            logger.debug(f"Queue full, dropped {event.label()} (p={entry.priority})")
            return None

        if evicted is not None:
            self.stats.evicted += 1
        self.stats.queued += 1
        self._recent.append(event.label())
        return entry

    def _merge(self, pending: QueuedEvent, event: GameEvent) -> None:
        pending.merged_count += 1
        self.stats.merged += 1
        if event.magnitude < pending.event.magnitude:
            return

        upgraded = event.magnitude > pending.event.magnitude
        pending.event = event
        priority = self.priority_of(event)
        if priority > pending.priority:
            self.queue.reprioritize(pending, priority)
        if upgraded:
            self._recent.append(event.label())
            logger.debug(f"Merged into queued entry, now {event.label()}")

    def note_dispatched(self, event: GameEvent) -> None:
        """Remember that ``event`` got a turn, to suppress late duplicates."""
        self._dispatched_at[event.dedup_key] = event.timestamp
        horizon = event.timestamp - self.dedup_cooldown_s
        for key in [k for k, ts in self._dispatched_at.items() if ts < horizon]:
            del self._dispatched_at[key]

    def recent_events(self) -> List[str]:
        return list(self._recent)

    def apply_config(self, priorities: Dict[str, int], dedup_cooldown_s: float) -> None:
        self.priorities = dict(priorities)
        self.dedup_cooldown_s = dedup_cooldown_s

    def reset(self) -> None:
        self.queue.clear()
        self._recent.clear()
        self._dispatched_at.clear()
        self.stats = IntakeStats()
