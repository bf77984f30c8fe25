"""Gameplay event data structures."""

from dataclasses import dataclass, field
from typing import Optional

from .enums import EventKind, MagnitudeBucket


@dataclass(frozen=True)
class GameEvent:
    """A raw notable moment emitted by gameplay telemetry.

    Variant payloads are only meaningful for their kind:
    ``flips`` for FLIP, ``enemy_type`` for KILL, ``speed_tier`` for
    SPEED_TIER and ``health`` (0.0-1.0) for NEAR_DEATH.
    """

    kind: EventKind
    timestamp: float  # Game clock, seconds
    magnitude_bucket: MagnitudeBucket = MagnitudeBucket.NONE
    flips: int = 0
    enemy_type: Optional[str] = None
    speed_tier: int = 0
    health: Optional[float] = None

    @classmethod
    def big_jump(cls, timestamp: float) -> "GameEvent":
        return cls(EventKind.JUMP, timestamp, MagnitudeBucket.BIG)

    @classmethod
    def huge_jump(cls, timestamp: float) -> "GameEvent":
        return cls(EventKind.JUMP, timestamp, MagnitudeBucket.HUGE)

    @classmethod
    def kill(cls, timestamp: float, enemy_type: str = "grunt") -> "GameEvent":
        return cls(EventKind.KILL, timestamp, enemy_type=enemy_type)

    @classmethod
    def flip(cls, timestamp: float, flips: int) -> "GameEvent":
        return cls(EventKind.FLIP, timestamp, flips=flips)

    @classmethod
    def speed(cls, timestamp: float, tier: int) -> "GameEvent":
        return cls(EventKind.SPEED_TIER, timestamp, speed_tier=tier)

    @classmethod
    def near_death(cls, timestamp: float, health: float) -> "GameEvent":
        return cls(EventKind.NEAR_DEATH, timestamp, health=health)

    @property
    def dedup_key(self) -> str:
        """Identity used to merge near-duplicates.

        Magnitude is not part of the key so a bigger version of the same
        moment can supersede a smaller one still waiting in the queue.
        """
        if self.kind is EventKind.KILL:
            return f"kill:{self.enemy_type or 'unknown'}"
        return self.kind.value

    @property
    def magnitude(self) -> int:
        if self.kind is EventKind.JUMP:
            return int(self.magnitude_bucket)
        if self.kind is EventKind.FLIP:
            return self.flips
        if self.kind is EventKind.SPEED_TIER:
            return self.speed_tier
        return 0

    @property
    def priority_key(self) -> str:
        """Key into the static priority table."""
        if self.kind is EventKind.JUMP:
            return "jump_huge" if self.magnitude_bucket >= MagnitudeBucket.HUGE else "jump_big"
        return self.kind.value

    def label(self) -> str:
        if self.kind is EventKind.JUMP:
            return "JumpHuge" if self.magnitude_bucket >= MagnitudeBucket.HUGE else "JumpBig"
        if self.kind is EventKind.FLIP:
            return f"Flip({self.flips})"
        if self.kind is EventKind.KILL:
            return f"Kill({self.enemy_type or 'unknown'})"
        if self.kind is EventKind.SPEED_TIER:
            return f"SpeedTier({self.speed_tier})"
        if self.kind is EventKind.NEAR_DEATH:
            return f"NearDeath({self.health if self.health is not None else '?'})"
        return "".join(part.title() for part in self.kind.value.split("_"))


@dataclass
class QueuedEvent:
    """A GameEvent waiting in the commentary queue."""

    event: GameEvent
    priority: int
    enqueue_time: float
    merged_count: int = 0  # Near-duplicates folded into this entry
    evicted: bool = field(default=False, repr=False)

    @property
    def dedup_key(self) -> str:
        return self.event.dedup_key

    def sort_key(self):
        return (-self.priority, self.enqueue_time)
