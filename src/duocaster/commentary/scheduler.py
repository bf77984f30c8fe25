"""Round-robin turn scheduling between the two commentators."""

import logging
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

from ..core.turn import Commentator, Turn
from ..voice.narration_client import NarrationClient
from .intake import EventIntake
from .prompt_builder import PromptBuilder, RunContext
from .queue import CommentaryQueue

logger = logging.getLogger(__name__)


class TurnScheduler:
    """Decides which persona speaks next and when a turn may start.

    Turn slots alternate strictly A, B, A, B regardless of how earlier turns
    ended. ``try_dispatch`` is called once per game tick and succeeds only if
    the queue has an event, the due persona is idle and the global gap since
    the last dispatch has elapsed. A due persona stuck past its deadline is
    cancelled first, so a dead network never blocks the rotation.
    """

    def __init__(
        self,
        queue: CommentaryQueue,
        intake: EventIntake,
        commentators: List[Commentator],
        client: NarrationClient,
        prompt_builder: PromptBuilder,
        context_provider: Callable[[], RunContext],
        min_seconds_between_lines: float = 4.0,
        turn_deadline_s: float = 8.0,
    ):
        if len(commentators) != 2:
            raise ValueError("TurnScheduler needs exactly two commentators")
        self.queue = queue
        self.intake = intake
        self.commentators = commentators
        self.client = client
        self.prompt_builder = prompt_builder
        self.context_provider = context_provider
        self.min_seconds_between_lines = min_seconds_between_lines
        self.turn_deadline_s = turn_deadline_s

        self._next_index = 0
        self._next_sequence = 1
        self._last_dispatch_at: Optional[float] = None
        self.history: Deque[Tuple[int, str]] = deque(maxlen=256)  # (sequence, persona_id)

    @property
    def next_persona(self) -> Commentator:
        return self.commentators[self._next_index]

    @property
    def other_persona(self) -> Commentator:
        return self.commentators[1 - self._next_index]

    @property
    def next_sequence_number(self) -> int:
        return self._next_sequence

    def cooldown_remaining(self, now: float) -> float:
        if self._last_dispatch_at is None:
            return 0.0
        return max(0.0, self.min_seconds_between_lines - (now - self._last_dispatch_at))

    def try_dispatch(self, now: float) -> Optional[Turn]:
        """Start the next turn if all conditions hold.

        Returns:
            The dispatched Turn, or None if nothing was dispatched this tick
        """
        speaker = self.next_persona
        active = self.client.active_turn(speaker.persona_id)
        if active is not None and active.is_stuck(now):
            logger.warning(
                f"Turn #{active.sequence_number} for {speaker.persona_id} is past its "
                f"deadline ({active.state.value}), cancelling"
            )
            self.client.cancel(active)
            active = None

        if not self.queue or active is not None or self.cooldown_remaining(now) > 0:
            return None

        entry = self.queue.pop_next()
        other = self.other_persona
        prompt = self.prompt_builder.build(
            entry.event,
            speaker.profile,
            other.last_spoken_line,
            self.context_provider(),
            other_persona_name=other.profile.name,
        )
        turn = Turn(
            sequence_number=self._next_sequence,
            persona_id=speaker.persona_id,
            source_event=entry.event,
            prompt=prompt,
            deadline=now + self.turn_deadline_s,
            dispatched_at=now,
        )

        self._next_sequence += 1
        self._next_index = 1 - self._next_index
        self._last_dispatch_at = now
        self.history.append((turn.sequence_number, turn.persona_id))
        self.intake.note_dispatched(entry.event)

        logger.info(
            f"Turn #{turn.sequence_number} -> {speaker.profile.name}: "
            f"{entry.event.label()} (p={entry.priority})"
        )
        self.client.dispatch(turn, speaker)
        return turn

    def apply_config(self, min_seconds_between_lines: float, turn_deadline_s: float) -> None:
        self.min_seconds_between_lines = min_seconds_between_lines
        self.turn_deadline_s = turn_deadline_s

    def reset(self) -> None:
        """Start a fresh run with persona A. Sequence numbers keep counting."""
        self._next_index = 0
        self._last_dispatch_at = None
        self.history.clear()
