"""Exception hierarchy for duocaster.

Only ``ConfigError`` is ever raised to callers outside the package. The
network layer raises ``GenerationAPIError`` and friends, and the narration
client collapses all of them into ``NarrationFailed`` before anything reaches
the game loop.
"""

from typing import Optional

from .enums import FailureKind


class DuocasterError(Exception):
    """Base class for all duocaster errors."""


class ConfigError(DuocasterError):
    """Invalid narration configuration."""


class GenerationAPIError(DuocasterError):
    """Exception for generation API errors (non-success HTTP responses)."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Generation API error {status_code}: {message}")


class SessionExpiredError(GenerationAPIError):
    """The persona's conversation session is no longer known to the API."""


class RateLimitedError(GenerationAPIError):
    """Quota or rate limit hit (HTTP 429)."""


class AudioDecodeError(DuocasterError):
    """Audio payload could not be decoded into a playable clip."""


class NarrationFailed(DuocasterError):
    """Single outcome for every way a narration turn can fail.

    Callers only need success-vs-fallback; ``kind`` is kept for logging.
    """

    def __init__(self, kind: FailureKind, message: str = "", cause: Optional[BaseException] = None):
        self.kind = kind
        self.message = message
        self.cause = cause
        super().__init__(f"Narration failed ({kind.value}): {message}")
