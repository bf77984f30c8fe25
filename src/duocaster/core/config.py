"""Narration configuration dataclasses.

Defaults follow the shipped ``commentator.toml`` of the game: two personas
(an analytical one and a hyped one), a four second gap between lines, one
retry with a 0.75s backoff.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]

STYLE_LENGTHS = ("short", "medium", "long")
FALLBACK_MODES = ("cycle", "random")

DEFAULT_STYLE_INSTRUCTION = (
    "Return exactly one short colorful commentary line with playful banter "
    "grounded in the game events."
)


def default_priorities() -> Dict[str, int]:
    """Static priority table (higher speaks first)."""
    return {
        "boss_killed": 100,
        "near_death": 90,
        "bomb_hit": 70,
        "jump_huge": 60,
        "jump_big": 50,
        "crash": 45,
        "flip": 40,
        "kill": 30,
        "crowd_pressure": 20,
        "wheelie_long": 15,
        "speed_tier": 10,
    }


@dataclass
class CommentatorProfile:
    """Voice and style configuration for one persona."""

    id: str
    name: str = "Commentator"
    character_id: str = ""  # Character/session owner on the generation API
    voice_id: str = ""  # Voice used by the audio-synthesis call
    style_instruction: str = DEFAULT_STYLE_INSTRUCTION
    style_tone: str = "neutral"
    style_length: str = "short"  # short/medium/long
    emotions: List[str] = field(default_factory=lambda: ["Neutral"])
    profanity_filter: bool = True
    subtitle_color: RGB = (0.9, 0.9, 0.9)


def default_commentators() -> List[CommentatorProfile]:
    return [
        CommentatorProfile(
            id="commentator_a",
            name="George",
            character_id="cmlarc6fv0003l404isl4cdxl",
            voice_id="george",
            style_tone="analytical",
            emotions=["Neutral", "Concerned", "Pleased", "Confident"],
            subtitle_color=(0.55, 0.85, 1.00),
        ),
        CommentatorProfile(
            id="commentator_b",
            name="jerry",
            character_id="cmlcaw5810001i804mblfloyr",
            voice_id="jerry",
            style_tone="hyped",
            emotions=["Happy", "Amazed", "Curious", "Impressed", "Confident"],
            subtitle_color=(1.00, 0.78, 0.40),
        ),
    ]


@dataclass
class FallbackLines:
    """Canned lines used when the network path cannot deliver in time."""

    lines: List[str] = field(default_factory=lambda: ["Nice!"])
    # event kind value -> curated lines for that kind
    by_kind: Dict[str, List[str]] = field(default_factory=lambda: {
        "jump": ["Look at that air!", "Sending it!"],
        "kill": ["Another one down.", "Clean hit."],
        "boss_killed": ["The boss is down!", "That's the big one!"],
        "crash": ["Ouch. Shake it off.", "That's going to leave a mark."],
        "near_death": ["Hanging on by a thread!", "Careful now!"],
    })


@dataclass
class CommentaryConfig:
    """Timing, capacity and retry knobs for the commentary core."""

    # ===========================================
    # PACING
    # ===========================================
    min_seconds_between_lines: float = 4.0  # Global gap between dispatches
    dedup_cooldown_s: float = 2.0  # Same dedup key within this window merges
    queue_capacity: int = 16
    recent_events_window: int = 8  # Recent events carried in the run context

    # ===========================================
    # NETWORK POLICY
    # ===========================================
    api_enabled: bool = True
    max_attempts: int = 2  # Per stage; one retry like the shipped config
    retry_backoff_s: float = 0.75  # Doubles on each further attempt
    chat_timeout_s: float = 3.0
    audio_timeout_s: float = 3.0
    turn_deadline_s: float = 8.0  # Overall budget for one turn
    # How long ordering waits on a lower sequence number before forcing its
    # fallback. None means one turn deadline.
    hold_timeout_s: Optional[float] = None

    # ===========================================
    # OUTPUT
    # ===========================================
    narration_volume: float = 1.0
    ducking_volume: float = 0.35  # Music/SFX level while narration plays
    fallback_mode: str = "cycle"  # cycle/random

    @property
    def effective_hold_timeout_s(self) -> float:
        if self.hold_timeout_s is None:
            return self.turn_deadline_s
        return self.hold_timeout_s


@dataclass
class NarrationConfig:
    """Top-level configuration for the narration core."""

    commentary: CommentaryConfig = field(default_factory=CommentaryConfig)
    commentators: List[CommentatorProfile] = field(default_factory=default_commentators)
    fallback: FallbackLines = field(default_factory=FallbackLines)
    priorities: Dict[str, int] = field(default_factory=default_priorities)

    # ===========================================
    # API SETTINGS
    # ===========================================
    api_base_url: str = "https://api.convai.com"
    api_key: Optional[str] = None

    def priority_for(self, key: str) -> int:
        return self.priorities.get(key, 0)

    def profile(self, persona_id: str) -> CommentatorProfile:
        for profile in self.commentators:
            if profile.id == persona_id:
                return profile
        raise KeyError(persona_id)

    def validate(self) -> "NarrationConfig":
        """Check the configuration, raising ConfigError on the first problem."""
        c = self.commentary
        if c.min_seconds_between_lines < 0:
            raise ConfigError("commentary.min_seconds_between_lines must be >= 0")
        if c.dedup_cooldown_s < 0:
            raise ConfigError("commentary.dedup_cooldown_s must be >= 0")
        if c.queue_capacity < 1:
            raise ConfigError("commentary.queue_capacity must be >= 1")
        if c.max_attempts < 1:
            raise ConfigError("commentary.max_attempts must be >= 1")
        if c.retry_backoff_s < 0:
            raise ConfigError("commentary.retry_backoff_s must be >= 0")
        for name in ("chat_timeout_s", "audio_timeout_s", "turn_deadline_s"):
            if getattr(c, name) <= 0:
                raise ConfigError(f"commentary.{name} must be > 0")
        if c.hold_timeout_s is not None and c.hold_timeout_s <= 0:
            raise ConfigError("commentary.hold_timeout_s must be > 0")
        if c.narration_volume < 0:
            raise ConfigError("commentary.narration_volume must be >= 0")
        if not 0.0 <= c.ducking_volume <= 1.0:
            raise ConfigError("commentary.ducking_volume must be within [0, 1]")
        if c.fallback_mode not in FALLBACK_MODES:
            raise ConfigError(
                f"commentary.fallback_mode `{c.fallback_mode}` is unsupported "
                f"(expected {'/'.join(FALLBACK_MODES)})"
            )

        if len(self.commentators) != 2:
            raise ConfigError("exactly two commentator profiles are required")
        seen = set()
        for index, profile in enumerate(self.commentators):
            if not profile.id.strip():
                raise ConfigError(f"commentators[{index}].id cannot be empty")
            if profile.id in seen:
                raise ConfigError(f"commentators contains duplicate id `{profile.id}`")
            seen.add(profile.id)
            if not profile.name.strip():
                raise ConfigError(f"commentators[{index}].name cannot be empty")
            if not profile.style_instruction.strip():
                raise ConfigError(f"commentators[{index}].style_instruction cannot be empty")
            if profile.style_length not in STYLE_LENGTHS:
                raise ConfigError(
                    f"commentators[{index}].style_length `{profile.style_length}` is "
                    f"unsupported (expected short/medium/long)"
                )
            if not profile.emotions or any(not e.strip() for e in profile.emotions):
                raise ConfigError(f"commentators[{index}].emotions must be non-empty strings")

        for key, value in self.priorities.items():
            if value < 0:
                raise ConfigError(f"priorities.{key} must be >= 0")
        return self

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "NarrationConfig":
        """Build the default configuration with API settings from the environment.

        Reads ``DUOCASTER_API_KEY``, ``DUOCASTER_API_URL`` and
        ``DUOCASTER_API_ENABLED`` (after loading a ``.env`` file if present).
        """
        if dotenv:
            load_dotenv()
        config = cls()
        config.api_key = os.getenv("DUOCASTER_API_KEY") or None
        config.api_base_url = os.getenv("DUOCASTER_API_URL", config.api_base_url)
        enabled = os.getenv("DUOCASTER_API_ENABLED")
        if enabled is not None:
            config.commentary.api_enabled = enabled.strip().lower() not in ("0", "false", "no", "off")
        return config.validate()


class ConfigStore:
    """Holds the active configuration and applies hot reloads.

    An invalid reload is logged and ignored; the previous values stay active.
    """

    def __init__(self, config: Optional[NarrationConfig] = None):
        self._config = (config or NarrationConfig()).validate()
        self._listeners: List[Callable[[NarrationConfig], None]] = []

    @property
    def config(self) -> NarrationConfig:
        return self._config

    def subscribe(self, listener: Callable[[NarrationConfig], None]) -> None:
        self._listeners.append(listener)

    def reload(self, candidate: NarrationConfig) -> bool:
        """Swap in ``candidate`` if it validates. Returns whether it was applied."""
        candidate = copy.deepcopy(candidate)
        try:
            candidate.validate()
        except ConfigError as e:
            logger.warning(f"Rejected config reload, keeping previous values: {e}")
            return False

        self._config = candidate
        logger.info("Narration config reloaded")
        for listener in self._listeners:
            listener(candidate)
        return True
