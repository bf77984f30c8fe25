"""Enumerations for gameplay events, turns and narration failures."""

from enum import Enum, IntEnum


class EventKind(Enum):
    """Kinds of notable gameplay moments reported by telemetry."""

    JUMP = "jump"
    WHEELIE_LONG = "wheelie_long"
    FLIP = "flip"
    KILL = "kill"
    BOSS_KILLED = "boss_killed"
    CRASH = "crash"
    SPEED_TIER = "speed_tier"
    NEAR_DEATH = "near_death"
    CROWD_PRESSURE = "crowd_pressure"
    BOMB_HIT = "bomb_hit"


class MagnitudeBucket(IntEnum):
    """Ordinal size of an event (only jumps are bucketed)."""

    NONE = 0
    BIG = 1
    HUGE = 2


class TurnState(Enum):
    """Lifecycle of a single commentary turn."""

    DISPATCHED = "dispatched"
    AWAITING_CHAT = "awaiting_chat"
    AWAITING_AUDIO = "awaiting_audio"
    COMPLETED = "completed"
    FAILED_FALLBACK = "failed_fallback"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            TurnState.COMPLETED,
            TurnState.FAILED_FALLBACK,
            TurnState.CANCELLED,
        )


class FailureKind(str, Enum):
    """Why a narration request could not deliver a voiced line."""

    TIMEOUT = "timeout"
    REQUEST = "request"  # Network error or non-success response
    DECODE = "decode"  # Malformed or undecodable audio payload
    SESSION_EXPIRED = "session_expired"
    RATE_LIMITED = "rate_limited"
    DISABLED = "disabled"  # API switched off in config
    STALE = "stale"  # Turn passed its deadline or hold timeout
