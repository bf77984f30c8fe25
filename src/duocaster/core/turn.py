"""Turn, commentator and result data structures shared across the pipeline."""

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Tuple

from .config import CommentatorProfile
from .enums import TurnState
from .errors import NarrationFailed
from .events import GameEvent

if TYPE_CHECKING:
    from ..commentary.prompt_builder import PromptPayload
    from ..voice.audio import DecodedAudio


@dataclass
class Commentator:
    """One of the two personas.

    ``session_id`` and ``last_spoken_line`` are written only by the turn that
    holds this persona's single-flight slot.
    """

    profile: CommentatorProfile
    session_id: Optional[str] = None
    last_spoken_line: Optional[str] = None
    lines_spoken: int = 0

    @property
    def persona_id(self) -> str:
        return self.profile.id

    @property
    def subtitle_color(self) -> Tuple[float, float, float]:
        return self.profile.subtitle_color

    def record_line(self, text: str, session_id: Optional[str]) -> None:
        self.last_spoken_line = text
        self.lines_spoken += 1
        if session_id:
            self.session_id = session_id

    def reset(self) -> None:
        """Forget the conversation at run end."""
        self.session_id = None
        self.last_spoken_line = None
        self.lines_spoken = 0


@dataclass
class NarrationResult:
    """A line ready for the subtitle view and audio sink."""

    sequence_number: int
    persona_id: str
    text: str
    subtitle_color: Tuple[float, float, float]
    audio_clip: Optional["DecodedAudio"] = None  # Absent on fallback
    is_fallback: bool = False

    @property
    def has_audio(self) -> bool:
        return self.audio_clip is not None


@dataclass
class Turn:
    """One dispatch cycle, tracked end-to-end by sequence number.

    State changes go through ``transition`` so that a cancellation racing a
    background completion produces exactly one terminal state.
    """

    sequence_number: int
    persona_id: str
    source_event: GameEvent
    prompt: "PromptPayload"
    deadline: float  # Game clock
    dispatched_at: float
    state: TurnState = TurnState.DISPATCHED
    attempt_count: int = 0
    text: Optional[str] = None
    audio_clip: Optional["DecodedAudio"] = None
    session_id: Optional[str] = None
    failure: Optional[NarrationFailed] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal

    def is_stuck(self, now: float) -> bool:
        return self.is_active and now > self.deadline

    def transition(self, new_state: TurnState) -> bool:
        """Move to ``new_state`` unless the turn already finished.

        Returns:
            True if the state changed
        """
        with self._lock:
            if self.state.is_terminal:
                return False
            self.state = new_state
            return True

    def complete(self, text: str, audio_clip: Optional["DecodedAudio"], session_id: Optional[str]) -> bool:
        with self._lock:
            if self.state.is_terminal:
                return False
            self.text = text
            self.audio_clip = audio_clip
            self.session_id = session_id
            self.state = TurnState.COMPLETED
            return True

    def fail(self, failure: NarrationFailed) -> bool:
        with self._lock:
            if self.state.is_terminal:
                return False
            self.failure = failure
            self.state = TurnState.FAILED_FALLBACK
            return True

    def cancel(self) -> bool:
        return self.transition(TurnState.CANCELLED)
