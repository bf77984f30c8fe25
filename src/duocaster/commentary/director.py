"""Commentary director: wires the narration core into the game loop.

Usage:
    director = CommentaryDirector(NarrationConfig.from_env(), subtitle_view=hud, audio_sink=mixer)
    director.start_run(segment_name="canyon")

    # telemetry
    director.submit(GameEvent.huge_jump(timestamp=clock()))

    # every frame
    director.tick(clock())

    director.end_run()
    director.close()
"""

import logging
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Union

from ..core.config import ConfigStore, NarrationConfig
from ..core.enums import TurnState
from ..core.events import GameEvent, QueuedEvent
from ..core.turn import Commentator, NarrationResult, Turn
from ..voice.generation_client import GenerationTransport, create_client
from ..voice.narration_client import NarrationClient
from ..voice.sinks import AudioSink, SubtitleView
from .fallback import FallbackBank
from .intake import EventIntake
from .ordering import OrderingBuffer
from .prompt_builder import PromptBuilder, RunContext
from .queue import CommentaryQueue
from .scheduler import TurnScheduler

logger = logging.getLogger(__name__)


class CommentaryDirector:
    """Owns every narration component and drives them from ``tick``.

    Everything here runs on the game loop and returns without blocking; the
    only suspension happens inside the narration client's background loop.
    """

    def __init__(
        self,
        config: Union[NarrationConfig, ConfigStore, None] = None,
        transport: Optional[GenerationTransport] = None,
        subtitle_view: Optional[SubtitleView] = None,
        audio_sink: Optional[AudioSink] = None,
        clock: Callable[[], float] = time.monotonic,
        fallback_seed: Optional[int] = None,
    ):
        self.store = config if isinstance(config, ConfigStore) else ConfigStore(config)
        self.clock = clock
        cfg = self.store.config
        c = cfg.commentary

        self.queue = CommentaryQueue(capacity=c.queue_capacity)
        self.intake = EventIntake(
            self.queue,
            cfg.priorities,
            dedup_cooldown_s=c.dedup_cooldown_s,
            recent_window=c.recent_events_window,
        )
        self.commentators = [Commentator(profile) for profile in cfg.commentators]
        self.fallback = FallbackBank(cfg.fallback, mode=c.fallback_mode, seed=fallback_seed)
        self.client = NarrationClient(
            transport or create_client(api_key=cfg.api_key, base_url=cfg.api_base_url),
            c,
        )
        self.prompt_builder = PromptBuilder()
        self.scheduler = TurnScheduler(
            self.queue,
            self.intake,
            self.commentators,
            self.client,
            self.prompt_builder,
            context_provider=self.run_context,
            min_seconds_between_lines=c.min_seconds_between_lines,
            turn_deadline_s=c.turn_deadline_s,
        )
        self.ordering = OrderingBuffer(
            hold_timeout_s=c.effective_hold_timeout_s,
            on_hold_timeout=self._force_fallback,
            subtitle_view=subtitle_view,
            audio_sink=audio_sink,
            duck_to=c.ducking_volume,
            narration_volume=c.narration_volume,
        )

        self._turns: Dict[int, Turn] = {}  # Dispatched, not yet delivered
        self._context = RunContext()
        self.store.subscribe(self._apply_config)

    # =========================================================================
    # RUN LIFECYCLE
    # =========================================================================

    def start_run(self, segment_name: str = "start", health: float = 1.0) -> None:
        """Reset per-run state and begin a new run."""
        self.end_run()
        self._context = RunContext(segment_name=segment_name, health=health)
        logger.info(f"Commentary run started in segment {segment_name}")

    def end_run(self) -> None:
        """Drop pending commentary and forget both conversations."""
        for commentator in self.commentators:
            active = self.client.active_turn(commentator.persona_id)
            if active is not None:
                self.client.cancel(active)
        self.client.poll_completed()

        self.intake.reset()
        self.scheduler.reset()
        self.ordering.reset(first_sequence=self.scheduler.next_sequence_number)
        self._turns.clear()
        for commentator in self.commentators:
            commentator.reset()

    def close(self) -> None:
        self.end_run()
        self.client.stop()

    # =========================================================================
    # INBOUND
    # =========================================================================

    def submit(self, event: GameEvent) -> Optional[QueuedEvent]:
        """Telemetry entry point. Fire-and-forget; never raises on load."""
        return self.intake.submit(event)

    def update_context(
        self,
        segment_name: Optional[str] = None,
        score_streak: Optional[int] = None,
        health: Optional[float] = None,
    ) -> None:
        changes = {}
        if segment_name is not None:
            changes["segment_name"] = segment_name
        if score_streak is not None:
            changes["score_streak"] = score_streak
        if health is not None:
            changes["health"] = max(0.0, min(1.0, health))
        self._context = replace(self._context, **changes)

    def run_context(self) -> RunContext:
        return replace(self._context, recent_events=tuple(self.intake.recent_events()))

    def reload_config(self, candidate: NarrationConfig) -> bool:
        return self.store.reload(candidate)

    # =========================================================================
    # PER-FRAME
    # =========================================================================

    def tick(self, now: Optional[float] = None) -> List[NarrationResult]:
        """Advance the narration core by one frame.

        Returns:
            Results delivered to the subtitle view/audio sink this tick
        """
        now = self.clock() if now is None else now

        for turn in self.client.poll_completed():
            self._resolve(turn)

        turn = self.scheduler.try_dispatch(now)
        if turn is not None:
            self._turns[turn.sequence_number] = turn
            self.ordering.expect(turn.sequence_number, now)

        # A stuck turn cancelled by the scheduler lands in the channel right away
        for finished in self.client.poll_completed():
            self._resolve(finished)

        delivered = self.ordering.pump(now)
        for result in delivered:
            self._turns.pop(result.sequence_number, None)
        return delivered

    def _resolve(self, turn: Turn) -> None:
        """Turn a finished turn into a result for the ordering buffer."""
        if turn.sequence_number not in self._turns:
            # Already delivered by a hold timeout
            logger.debug(f"Turn #{turn.sequence_number} finished after delivery, ignored")
            return
        if turn.state is TurnState.COMPLETED:
            result = self._completed_result(turn)
        else:
            result = self._fallback_result(turn)
        self.ordering.release(result)

    def _completed_result(self, turn: Turn) -> NarrationResult:
        return NarrationResult(
            sequence_number=turn.sequence_number,
            persona_id=turn.persona_id,
            text=turn.text,
            subtitle_color=self._commentator(turn.persona_id).subtitle_color,
            audio_clip=turn.audio_clip,
        )

    def _fallback_result(self, turn: Turn) -> NarrationResult:
        reason = turn.failure.kind.value if turn.failure is not None else turn.state.value
        logger.info(f"Turn #{turn.sequence_number} using fallback line ({reason})")
        return NarrationResult(
            sequence_number=turn.sequence_number,
            persona_id=turn.persona_id,
            text=self.fallback.pick(turn.source_event.kind),
            subtitle_color=self._commentator(turn.persona_id).subtitle_color,
            is_fallback=True,
        )

    def _force_fallback(self, sequence_number: int) -> NarrationResult:
        """Hold timeout: give up on a turn the buffer has waited on too long."""
        turn = self._turns.get(sequence_number)
        if turn is None:
            persona = self.commentators[0]
            return NarrationResult(
                sequence_number=sequence_number,
                persona_id=persona.persona_id,
                text=self.fallback.pick_default(),
                subtitle_color=persona.subtitle_color,
                is_fallback=True,
            )
        if not self.client.cancel(turn) and turn.state is TurnState.COMPLETED:
            # Finished in the background since the last poll
            return self._completed_result(turn)
        return self._fallback_result(turn)

    def _commentator(self, persona_id: str) -> Commentator:
        for commentator in self.commentators:
            if commentator.persona_id == persona_id:
                return commentator
        raise KeyError(persona_id)

    # =========================================================================
    # HOT RELOAD
    # =========================================================================

    def _apply_config(self, cfg: NarrationConfig) -> None:
        c = cfg.commentary
        self.queue.resize(c.queue_capacity)
        self.intake.apply_config(cfg.priorities, c.dedup_cooldown_s)
        self.scheduler.apply_config(c.min_seconds_between_lines, c.turn_deadline_s)
        self.client.apply_config(c)
        self.fallback.mode = c.fallback_mode
        self.fallback.load(cfg.fallback)
        self.ordering.hold_timeout_s = c.effective_hold_timeout_s
        self.ordering.duck_to = c.ducking_volume
        self.ordering.narration_volume = c.narration_volume

        profiles = {profile.id: profile for profile in cfg.commentators}
        for commentator in self.commentators:
            if commentator.persona_id in profiles:
                commentator.profile = profiles[commentator.persona_id]
            else:
                logger.warning(
                    f"Reloaded config has no profile for {commentator.persona_id}; "
                    f"keeping the current one until the next session"
                )
