"""Audio payload decoding for synthesized narration.

The synthesis stage returns encoded bytes (WAV unless configured
otherwise). They are decoded here, off the game loop, so the audio sink only
ever receives PCM buffers.
"""

import io
import logging
from dataclasses import dataclass

from pydub import AudioSegment

from ..core.errors import AudioDecodeError

logger = logging.getLogger(__name__)


@dataclass
class DecodedAudio:
    """Decoded PCM buffer ready for playback."""

    segment: AudioSegment

    @property
    def raw_data(self) -> bytes:
        return self.segment.raw_data

    @property
    def frame_rate(self) -> int:
        return self.segment.frame_rate

    @property
    def channels(self) -> int:
        return self.segment.channels

    @property
    def sample_width(self) -> int:
        return self.segment.sample_width

    @property
    def duration_s(self) -> float:
        return len(self.segment) / 1000.0


def decode_audio_payload(data: bytes, audio_format: str = "wav") -> DecodedAudio:
    """Decode an encoded audio payload.

    Args:
        data: Encoded audio bytes from the synthesis call
        audio_format: Container format of ``data``

    Returns:
        DecodedAudio wrapping the PCM segment

    Raises:
        AudioDecodeError: if the payload is empty, malformed or silent-length
    """
    if not data:
        raise AudioDecodeError("empty audio payload")

    try:
        segment = AudioSegment.from_file(io.BytesIO(data), format=audio_format)
    except Exception as e:
        raise AudioDecodeError(f"could not decode {audio_format} payload: {e}") from e

    if len(segment) == 0:
        raise AudioDecodeError("decoded audio has zero length")
    return DecodedAudio(segment=segment)


def make_silent_wav(duration_s: float, frame_rate: int = 16000) -> bytes:
    """Encode a silent mono WAV clip (used by dry-run synthesis)."""
    silence = AudioSegment.silent(duration=max(1, int(duration_s * 1000)), frame_rate=frame_rate)
    buffer = io.BytesIO()
    silence.export(buffer, format="wav")
    return buffer.getvalue()
