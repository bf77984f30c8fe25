"""Prompt construction for commentary turns.

Only factual, structured context is assembled here. Flourish and banter are
left to the generation API, steered by the persona's style instruction.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from ..core.config import CommentatorProfile
from ..core.enums import EventKind, MagnitudeBucket
from ..core.events import GameEvent

FIRST_LINE_SENTINEL = "(nothing yet - this is the first line of the run)"

LENGTH_HINTS = {
    "short": "one sentence, under 15 words",
    "medium": "one or two sentences, under 30 words",
    "long": "two or three sentences, under 50 words",
}

_FLIP_NAMES = {1: "a flip", 2: "a double flip", 3: "a triple flip"}


@dataclass(frozen=True)
class RunContext:
    """Snapshot of the run the line is about."""

    segment_name: str = "unknown"
    score_streak: int = 0
    health: float = 1.0  # 0.0-1.0
    recent_events: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StyleKnobs:
    """Speaking persona's style settings as sent to the API."""

    persona_name: str
    instruction: str
    tone: str
    length: str
    emotions: Tuple[str, ...]
    profanity_filter: bool

    @classmethod
    def from_profile(cls, profile: CommentatorProfile) -> "StyleKnobs":
        return cls(
            persona_name=profile.name,
            instruction=profile.style_instruction,
            tone=profile.style_tone,
            length=profile.style_length,
            emotions=tuple(profile.emotions),
            profanity_filter=profile.profanity_filter,
        )


@dataclass(frozen=True)
class PromptPayload:
    """Request payload for the chat stage."""

    persona_id: str
    character_id: str
    event_summary: str
    style: StyleKnobs
    other_line: str
    run_context: RunContext
    other_persona_name: Optional[str] = None

    @property
    def is_first_line(self) -> bool:
        return self.other_line == FIRST_LINE_SENTINEL

    def to_text(self) -> str:
        """Render the chat message sent to the generation API."""
        ctx = self.run_context
        recent = ", ".join(ctx.recent_events) if ctx.recent_events else "none"
        partner = self.other_persona_name or "Your co-commentator"
        profanity = "Keep it clean, no profanity." if self.style.profanity_filter else "Mild profanity is fine."
        return f"""{self.style.instruction}

**What just happened**: {self.event_summary}.

**Run context**:
- Segment: {ctx.segment_name}
- Score streak: {ctx.score_streak}
- Player health: {round(ctx.health * 100)}%
- Recent events: {recent}

**{partner} last said**: {self.other_line}

You are {self.style.persona_name}. Tone: {self.style.tone}. Length: {LENGTH_HINTS.get(self.style.length, self.style.length)}.
Pick one emotion from: {", ".join(self.style.emotions)}.
{profanity}"""


def summarize_event(event: GameEvent) -> str:
    """Dry, factual one-line description of an event."""
    kind = event.kind
    if kind is EventKind.JUMP:
        size = "huge" if event.magnitude_bucket >= MagnitudeBucket.HUGE else "big"
        return f"player made a {size} jump"
    if kind is EventKind.WHEELIE_LONG:
        return "player held a long wheelie"
    if kind is EventKind.FLIP:
        return f"player landed {_FLIP_NAMES.get(event.flips, f'{event.flips} flips in one jump')}"
    if kind is EventKind.KILL:
        return f"player killed a {event.enemy_type or 'enemy'}"
    if kind is EventKind.BOSS_KILLED:
        return "player killed the boss"
    if kind is EventKind.CRASH:
        return "player crashed"
    if kind is EventKind.SPEED_TIER:
        return f"player reached speed tier {event.speed_tier}"
    if kind is EventKind.NEAR_DEATH:
        if event.health is None:
            return "player is close to death"
        return f"player is close to death at {round(event.health * 100)}% health"
    if kind is EventKind.CROWD_PRESSURE:
        return "a crowd of enemies is closing in on the player"
    if kind is EventKind.BOMB_HIT:
        return "player was hit by a bomb"
    return f"player triggered {kind.value}"


class PromptBuilder:
    """Builds request payloads. Pure: identical inputs give identical payloads."""

    def build(
        self,
        event: GameEvent,
        speaking_persona: CommentatorProfile,
        other_persona_last_line: Optional[str],
        run_context: RunContext,
        other_persona_name: Optional[str] = None,
    ) -> PromptPayload:
        other_line = other_persona_last_line.strip() if other_persona_last_line else ""
        return PromptPayload(
            persona_id=speaking_persona.id,
            character_id=speaking_persona.character_id,
            event_summary=summarize_event(event),
            style=StyleKnobs.from_profile(speaking_persona),
            other_line=other_line or FIRST_LINE_SENTINEL,
            run_context=run_context,
            other_persona_name=other_persona_name,
        )
