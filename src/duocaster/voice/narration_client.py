"""Narration client: asynchronous request lifecycle for commentary turns.

Each turn runs a two-stage pipeline on a background event loop:

    chat (prompt -> line)  ->  speech (line -> audio)  ->  decode

The game loop never awaits any of it. ``dispatch`` returns immediately and
finished turns come back through ``poll_completed``.

Policy:
- Single flight per persona: dispatching for a persona that still has an
  active turn cancels that turn first.
- Every stage attempt runs under a strict timeout, capped by what is left of
  the turn's overall deadline.
- Failed attempts are retried with exponential backoff, per stage, unless
  the backoff would overrun the turn deadline.
- All failures collapse into ``NarrationFailed``.
"""

import asyncio
import logging
import queue
import re
import threading
from concurrent.futures import Future
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import aiohttp

from ..core.config import CommentaryConfig
from ..core.enums import FailureKind, TurnState
from ..core.errors import (
    AudioDecodeError,
    GenerationAPIError,
    NarrationFailed,
    RateLimitedError,
    SessionExpiredError,
)
from ..core.turn import Commentator, Turn
from .audio import DecodedAudio, decode_audio_payload
from .generation_client import GenerationTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EMOTION_TAG = re.compile(r"^\s*\[([^\]]+)\]\s*")


def split_emotion_tag(text: str, allowed: Sequence[str]) -> Tuple[str, Optional[str]]:
    """Strip a leading ``[Emotion]`` tag if it names one of ``allowed``.

    Returns:
        (text without the tag, emotion or None)
    """
    match = _EMOTION_TAG.match(text)
    if not match:
        return text, None
    wanted = match.group(1).strip().lower()
    for emotion in allowed:
        if emotion.lower() == wanted:
            return text[match.end():].strip(), emotion
    return text, None


def classify_failure(error: BaseException) -> FailureKind:
    """Map a stage exception onto the failure taxonomy."""
    if isinstance(error, asyncio.TimeoutError):
        return FailureKind.TIMEOUT
    if isinstance(error, SessionExpiredError):
        return FailureKind.SESSION_EXPIRED
    if isinstance(error, RateLimitedError):
        return FailureKind.RATE_LIMITED
    if isinstance(error, AudioDecodeError):
        return FailureKind.DECODE
    return FailureKind.REQUEST


class NarrationClient:
    """Runs narration turns off the game loop, at most one per persona."""

    def __init__(
        self,
        transport: GenerationTransport,
        config: Optional[CommentaryConfig] = None,
        audio_format: str = "wav",
        decoder: Callable[[bytes, str], DecodedAudio] = decode_audio_payload,
    ):
        self.transport = transport
        self.config = config or CommentaryConfig()
        self.audio_format = audio_format
        self.decoder = decoder

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._completed: "queue.SimpleQueue[Turn]" = queue.SimpleQueue()

        # Main-loop bookkeeping
        self._active: Dict[str, Turn] = {}  # persona_id -> slot holder
        self._futures: Dict[int, Future] = {}  # sequence_number -> background run
        self._owners: Dict[int, Commentator] = {}  # sequence_number -> persona

        # Background-loop only: a superseding turn waits for the cancelled one to let go
        self._persona_locks: Dict[str, asyncio.Lock] = {}

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def enabled(self) -> bool:
        return self.config.api_enabled

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background event loop (idempotent)."""
        if self.is_running:
            return
        self._loop = asyncio.new_event_loop()
        self._persona_locks = {}
        self._thread = threading.Thread(
            target=self._run_loop, name="duocaster-narration", daemon=True
        )
        self._thread.start()
        logger.debug("Narration loop started")

    def _run_loop(self) -> None:
        loop = self._loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    def stop(self, timeout: float = 2.0) -> None:
        """Cancel everything in flight and shut the background loop down."""
        for turn in list(self._active.values()):
            self.cancel(turn)
        if not self.is_running:
            return

        try:
            closing = asyncio.run_coroutine_threadsafe(self.transport.close(), self._loop)
            closing.result(timeout=timeout)
        except Exception as e:
            logger.warning(f"Error closing generation transport: {e}")

        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)
        self._thread = None
        self._loop = None
        logger.debug("Narration loop stopped")

    def apply_config(self, config: CommentaryConfig) -> None:
        """Use new timing settings for turns dispatched from now on."""
        self.config = config

    # =========================================================================
    # GAME LOOP API (non-blocking)
    # =========================================================================

    def active_turn(self, persona_id: str) -> Optional[Turn]:
        turn = self._active.get(persona_id)
        if turn is not None and turn.is_active:
            return turn
        return None

    def dispatch(self, turn: Turn, commentator: Commentator) -> None:
        """Start ``turn`` for ``commentator`` and return immediately."""
        previous = self.active_turn(turn.persona_id)
        if previous is not None:
            logger.info(
                f"Turn #{previous.sequence_number} superseded by "
                f"#{turn.sequence_number} for {turn.persona_id}"
            )
            self.cancel(previous)

        self._active[turn.persona_id] = turn
        self._owners[turn.sequence_number] = commentator

        if not self.enabled:
            turn.fail(NarrationFailed(FailureKind.DISABLED, "generation API disabled"))
            self._completed.put(turn)
            return

        self.start()
        budget = max(0.0, turn.deadline - turn.dispatched_at)
        future = asyncio.run_coroutine_threadsafe(
            self._run_turn(
                turn,
                session_id=commentator.session_id,
                character_id=commentator.profile.character_id,
                voice_id=commentator.profile.voice_id or commentator.persona_id,
                emotions=tuple(commentator.profile.emotions),
                budget_s=budget,
            ),
            self._loop,
        )
        self._futures[turn.sequence_number] = future

    def cancel(self, turn: Turn) -> bool:
        """Cancel ``turn`` without waiting for its I/O to stop.

        The persona's slot is free as soon as this returns. A turn that
        actually changed state is reported through ``poll_completed``.
        """
        changed = turn.cancel()
        future = self._futures.pop(turn.sequence_number, None)
        if future is not None:
            future.cancel()
        if self._active.get(turn.persona_id) is turn:
            del self._active[turn.persona_id]
        if changed:
            logger.debug(f"Cancelled turn #{turn.sequence_number} ({turn.persona_id})")
            self._completed.put(turn)
        return changed

    def poll_completed(self) -> List[Turn]:
        """Drain turns that reached a terminal state since the last poll.

        Completed turns update their persona's session and last line here,
        on the game loop, while the turn still owns the slot.
        """
        finished: List[Turn] = []
        while True:
            try:
                turn = self._completed.get_nowait()
            except queue.Empty:
                break

            self._futures.pop(turn.sequence_number, None)
            owner = self._owners.pop(turn.sequence_number, None)
            if owner is not None:
                if turn.state is TurnState.COMPLETED:
                    owner.record_line(turn.text, turn.session_id)
                elif turn.failure is not None and turn.failure.kind is FailureKind.SESSION_EXPIRED:
                    owner.session_id = None
            if self._active.get(turn.persona_id) is turn:
                del self._active[turn.persona_id]
            finished.append(turn)
        return finished

    # =========================================================================
    # BACKGROUND PIPELINE
    # =========================================================================

    async def _run_turn(
        self,
        turn: Turn,
        session_id: Optional[str],
        character_id: str,
        voice_id: str,
        emotions: Tuple[str, ...],
        budget_s: float,
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget_s
        session = {"id": session_id}  # Cleared when the API forgets it

        def forget_session():
            session["id"] = None

        lock = self._persona_locks.setdefault(turn.persona_id, asyncio.Lock())

        try:
            async with lock:
                if not turn.transition(TurnState.AWAITING_CHAT):
                    return
                reply = await self._run_stage(
                    turn,
                    "chat",
                    lambda: self.transport.chat(turn.prompt.to_text(), session["id"], character_id),
                    self.config.chat_timeout_s,
                    deadline,
                    on_session_expired=forget_session,
                )
                text, emotion = split_emotion_tag(reply.text, emotions)
                if not text:
                    raise NarrationFailed(FailureKind.REQUEST, "chat returned an empty line")

                if not turn.transition(TurnState.AWAITING_AUDIO):
                    return

                async def speak() -> DecodedAudio:
                    payload = await self.transport.synthesize(text, voice_id, emotion)
                    return await loop.run_in_executor(None, self.decoder, payload, self.audio_format)

                clip = await self._run_stage(turn, "audio", speak, self.config.audio_timeout_s, deadline)

                if turn.complete(text, clip, reply.session_id or session["id"]):
                    self._completed.put(turn)
                    logger.debug(f"Turn #{turn.sequence_number} completed: {text}")
        except NarrationFailed as failure:
            if turn.fail(failure):
                self._completed.put(turn)
                logger.warning(f"Turn #{turn.sequence_number} ({turn.persona_id}) falling back: {failure}")
        except asyncio.CancelledError:
            turn.cancel()
            raise
        except Exception as e:
            failure = NarrationFailed(FailureKind.REQUEST, f"unexpected error: {e}", e)
            if turn.fail(failure):
                self._completed.put(turn)
                logger.error(f"Turn #{turn.sequence_number} crashed: {e}", exc_info=True)

    async def _run_stage(
        self,
        turn: Turn,
        stage: str,
        call: Callable[[], Awaitable[T]],
        timeout_s: float,
        deadline: float,
        on_session_expired: Optional[Callable[[], None]] = None,
    ) -> T:
        """Run one stage with timeout and exponential-backoff retries."""
        loop = asyncio.get_running_loop()
        attempt = 0
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise NarrationFailed(FailureKind.STALE, f"{stage}: turn deadline passed")

            attempt += 1
            turn.attempt_count += 1
            try:
                return await asyncio.wait_for(call(), timeout=min(timeout_s, remaining))
            except (
                asyncio.TimeoutError,
                GenerationAPIError,
                AudioDecodeError,
                aiohttp.ClientError,
                OSError,
            ) as e:
                kind = classify_failure(e)
                failure = NarrationFailed(kind, f"{stage} attempt {attempt}: {str(e) or type(e).__name__}", e)

            if kind is FailureKind.SESSION_EXPIRED and on_session_expired is not None:
                on_session_expired()

            if attempt >= self.config.max_attempts:
                raise failure
            delay = self.config.retry_backoff_s * (2 ** (attempt - 1))
            if loop.time() + delay >= deadline:
                raise failure

            logger.info(
                f"Turn #{turn.sequence_number} {stage} failed ({kind.value}), "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
