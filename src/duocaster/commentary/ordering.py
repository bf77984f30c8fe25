"""Ordering buffer: delivers narration results in dispatch order."""

import logging
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from ..core.turn import NarrationResult
from ..voice.sinks import (
    AudioSink,
    DuckingHint,
    NullAudioSink,
    NullSubtitleView,
    SubtitleView,
)

logger = logging.getLogger(__name__)


class OrderingBuffer:
    """Holds results until every lower sequence number has been delivered.

    A gap is filled by the missing turn's own result, by a fallback, or, once
    its hold deadline passes, by ``on_hold_timeout`` which must return a
    substitute result for that sequence number. Worst-case wait is one hold
    timeout per gap.
    """

    def __init__(
        self,
        hold_timeout_s: float,
        on_hold_timeout: Callable[[int], NarrationResult],
        subtitle_view: Optional[SubtitleView] = None,
        audio_sink: Optional[AudioSink] = None,
        duck_to: float = 0.35,
        narration_volume: float = 1.0,
        first_sequence: int = 1,
    ):
        self.hold_timeout_s = hold_timeout_s
        self.on_hold_timeout = on_hold_timeout
        self.subtitle_view = subtitle_view or NullSubtitleView()
        self.audio_sink = audio_sink or NullAudioSink()
        self.duck_to = duck_to
        self.narration_volume = narration_volume
        self._next = first_sequence
        self._hold_until: Dict[int, float] = {}  # sequence -> hold deadline
        self._results: Dict[int, NarrationResult] = {}
        self.delivered: Deque[int] = deque(maxlen=256)  # Recent delivered sequence numbers

    @property
    def next_expected(self) -> int:
        return self._next

    @property
    def pending(self) -> int:
        return len(self._hold_until)

    def expect(self, sequence_number: int, now: float) -> None:
        """Register a dispatched sequence number and start its hold clock."""
        if sequence_number >= self._next:
            self._hold_until[sequence_number] = now + self.hold_timeout_s

    def release(self, result: NarrationResult) -> bool:
        """Hand in a result. Late or duplicate results are discarded.

        Returns:
            True if the result was accepted
        """
        seq = result.sequence_number
        if seq < self._next or seq in self._results:
            logger.debug(f"Discarding late result for turn #{seq}")
            return False
        self._results[seq] = result
        return True

    def pump(self, now: float) -> List[NarrationResult]:
        """Deliver everything that is next in line; force fallbacks that are overdue."""
        delivered: List[NarrationResult] = []
        while True:
            seq = self._next
            result = self._results.pop(seq, None)
            if result is None:
                hold_until = self._hold_until.get(seq)
                if hold_until is None or now < hold_until:
                    break
                logger.warning(f"Turn #{seq} held the line for {self.hold_timeout_s:.1f}s, forcing fallback")
                result = self.on_hold_timeout(seq)

            self._hold_until.pop(seq, None)
            self._deliver(result)
            delivered.append(result)
            self._next += 1
        return delivered

    def _deliver(self, result: NarrationResult) -> None:
        self.delivered.append(result.sequence_number)
        try:
            self.subtitle_view.show(result.text, result.subtitle_color, result.persona_id)
        except Exception as e:
            logger.error(f"Subtitle view failed for turn #{result.sequence_number}: {e}")

        if result.audio_clip is None:
            return
        hint = DuckingHint(
            duck_to=self.duck_to,
            narration_volume=self.narration_volume,
            duration_s=result.audio_clip.duration_s,
        )
        try:
            self.audio_sink.play(result.audio_clip, hint)
        except Exception as e:
            logger.error(f"Audio sink failed for turn #{result.sequence_number}: {e}")

    def reset(self, first_sequence: int = 1) -> None:
        self._next = first_sequence
        self._hold_until.clear()
        self._results.clear()
        self.delivered.clear()
