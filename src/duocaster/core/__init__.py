"""Core data model, configuration and errors for duocaster."""

from .config import (
    CommentaryConfig,
    CommentatorProfile,
    ConfigStore,
    FallbackLines,
    NarrationConfig,
    default_commentators,
    default_priorities,
)
from .enums import EventKind, FailureKind, MagnitudeBucket, TurnState
from .errors import (
    AudioDecodeError,
    ConfigError,
    DuocasterError,
    GenerationAPIError,
    NarrationFailed,
    RateLimitedError,
    SessionExpiredError,
)
from .events import GameEvent, QueuedEvent
from .turn import Commentator, NarrationResult, Turn

__all__ = [
    "CommentaryConfig",
    "CommentatorProfile",
    "ConfigStore",
    "FallbackLines",
    "NarrationConfig",
    "default_commentators",
    "default_priorities",
    "EventKind",
    "FailureKind",
    "MagnitudeBucket",
    "TurnState",
    "AudioDecodeError",
    "ConfigError",
    "DuocasterError",
    "GenerationAPIError",
    "NarrationFailed",
    "RateLimitedError",
    "SessionExpiredError",
    "GameEvent",
    "QueuedEvent",
    "Commentator",
    "NarrationResult",
    "Turn",
]
