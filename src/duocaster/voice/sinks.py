"""Output boundaries: subtitle view and audio sink.

The game supplies real implementations. Null sinks discard output; recording
sinks keep it in memory for tests and the demo run.
"""

import logging
from dataclasses import dataclass
from typing import List, Protocol, Tuple, runtime_checkable

from .audio import DecodedAudio

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]


@dataclass(frozen=True)
class DuckingHint:
    """How the mixer should treat music/SFX while a clip plays."""

    duck_to: float  # Target music/SFX volume, 0.0-1.0
    narration_volume: float
    duration_s: float


@runtime_checkable
class SubtitleView(Protocol):
    """Receives lines in sequence order for display."""

    def show(self, text: str, subtitle_color: RGB, persona_id: str) -> None:
        ...


@runtime_checkable
class AudioSink(Protocol):
    """Receives decoded clips in sequence order for playback."""

    def play(self, clip: DecodedAudio, ducking: DuckingHint) -> None:
        ...


class NullSubtitleView:
    """Discards subtitles."""

    def show(self, text: str, subtitle_color: RGB, persona_id: str) -> None:
        pass


class NullAudioSink:
    """Discards audio."""

    def play(self, clip: DecodedAudio, ducking: DuckingHint) -> None:
        pass


class RecordingSubtitleView:
    """Keeps every shown subtitle, logging it as it arrives."""

    def __init__(self):
        self.lines: List[Tuple[str, RGB, str]] = []

    def show(self, text: str, subtitle_color: RGB, persona_id: str) -> None:
        self.lines.append((text, subtitle_color, persona_id))
        logger.info(f"[{persona_id}] {text}")


class RecordingAudioSink:
    """Keeps every clip handed over for playback."""

    def __init__(self):
        self.clips: List[Tuple[DecodedAudio, DuckingHint]] = []

    def play(self, clip: DecodedAudio, ducking: DuckingHint) -> None:
        self.clips.append((clip, ducking))
