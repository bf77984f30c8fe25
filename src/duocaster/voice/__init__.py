"""duocaster voice module.

Talks to the generation API (chat, then speech), decodes the audio and hands
finished lines to the game's subtitle view and audio sink.

Usage:
    from duocaster.voice import (
        GenerationAPIClient,
        NarrationClient,
        RecordingSubtitleView,
    )

    client = NarrationClient(GenerationAPIClient(dry_run=True))
    client.dispatch(turn, commentator)
    for finished in client.poll_completed():
        ...
"""

# Audio decoding
from .audio import (
    DecodedAudio,
    decode_audio_payload,
    make_silent_wav,
)

# Generation API client
from .generation_client import (
    ChatReply,
    GenerationAPIClient,
    GenerationTransport,
    UsageStats,
    create_client,
)

# Turn lifecycle
from .narration_client import (
    NarrationClient,
    classify_failure,
    split_emotion_tag,
)

# Output boundaries
from .sinks import (
    AudioSink,
    DuckingHint,
    NullAudioSink,
    NullSubtitleView,
    RecordingAudioSink,
    RecordingSubtitleView,
    SubtitleView,
)

__all__ = [
    "DecodedAudio",
    "decode_audio_payload",
    "make_silent_wav",
    "ChatReply",
    "GenerationAPIClient",
    "GenerationTransport",
    "UsageStats",
    "create_client",
    "NarrationClient",
    "classify_failure",
    "split_emotion_tag",
    "AudioSink",
    "DuckingHint",
    "NullAudioSink",
    "NullSubtitleView",
    "RecordingAudioSink",
    "RecordingSubtitleView",
    "SubtitleView",
]
