"""Canned commentary lines used when the network path cannot deliver."""

import random
from typing import Dict, List, Optional

from ..core.config import FallbackLines
from ..core.enums import EventKind

DEFAULT_FALLBACK_LINE = "What a run!"


class FallbackBank:
    """Picks a text-only line for an event kind. Never fails.

    Lookup order: curated lines for the kind, then the generic pool, then a
    built-in default. ``mode="cycle"`` walks each pool with its own cursor;
    ``mode="random"`` draws from a seedable RNG.
    """

    def __init__(self, lines: Optional[FallbackLines] = None, mode: str = "cycle", seed: Optional[int] = None):
        self.mode = mode
        self._rng = random.Random(seed)
        self._cursors: Dict[str, int] = {}
        self.load(lines or FallbackLines())

    def load(self, lines: FallbackLines) -> None:
        self._generic: List[str] = [line for line in lines.lines if line.strip()]
        self._by_kind: Dict[str, List[str]] = {
            kind: [line for line in pool if line.strip()]
            for kind, pool in lines.by_kind.items()
        }
        self._cursors.clear()

    def pool_for(self, event_kind: EventKind) -> List[str]:
        pool = self._by_kind.get(event_kind.value)
        if pool:
            return pool
        if self._generic:
            return self._generic
        return [DEFAULT_FALLBACK_LINE]

    def pick_default(self) -> str:
        """Line from the generic pool, for when the event is unknown."""
        pool = self._generic or [DEFAULT_FALLBACK_LINE]
        index = self._cursors.get("*", 0)
        self._cursors["*"] = index + 1
        return pool[index % len(pool)]

    def pick(self, event_kind: EventKind) -> str:
        pool = self.pool_for(event_kind)
        if self.mode == "random":
            return self._rng.choice(pool)

        cursor_key = event_kind.value if self._by_kind.get(event_kind.value) else "*"
        index = self._cursors.get(cursor_key, 0)
        self._cursors[cursor_key] = index + 1
        return pool[index % len(pool)]
