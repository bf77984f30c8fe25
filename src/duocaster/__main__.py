"""Main entry point for duocaster.

Runs a simulated action-game session: random telemetry events are fed to
the commentary director, which narrates them through the generation API
(dry-run unless DUOCASTER_API_KEY is set) and prints subtitles in order.

Usage:
    python -m duocaster --seconds 30
    python -m duocaster --latency 2.0 --fail-rate 0.3
"""

import argparse
import asyncio
import logging
import random
import sys
import time
from typing import Optional

from .commentary import CommentaryDirector
from .core.config import NarrationConfig
from .core.enums import EventKind
from .core.errors import GenerationAPIError
from .core.events import GameEvent
from .utils.logger import setup_logger
from .voice import GenerationAPIClient, RecordingAudioSink, RecordingSubtitleView
from .voice.generation_client import ChatReply


class FlakyClient(GenerationAPIClient):
    """Dry-run client that fails a share of calls, to exercise fallbacks."""

    def __init__(self, fail_rate: float, **kwargs):
        super().__init__(**kwargs)
        self.fail_rate = fail_rate

    async def chat(self, prompt_text: str, session_id: Optional[str], character_id: str) -> ChatReply:
        if random.random() < self.fail_rate:
            await asyncio.sleep(self.dry_run_latency_s)
            raise GenerationAPIError(503, "simulated outage")
        return await super().chat(prompt_text, session_id, character_id)


def random_event(now: float) -> GameEvent:
    kind = random.choice(list(EventKind))
    if kind is EventKind.JUMP:
        return random.choice([GameEvent.big_jump, GameEvent.huge_jump])(now)
    if kind is EventKind.KILL:
        return GameEvent.kill(now, random.choice(["grunt", "drone", "brute"]))
    if kind is EventKind.FLIP:
        return GameEvent.flip(now, random.randint(1, 3))
    if kind is EventKind.SPEED_TIER:
        return GameEvent.speed(now, random.randint(1, 2))
    if kind is EventKind.NEAR_DEATH:
        return GameEvent.near_death(now, random.uniform(0.05, 0.15))
    return GameEvent(kind, now)


def main(argv=None):
    """Run a simulated session."""
    parser = argparse.ArgumentParser(description="Simulated two-commentator narration run")
    parser.add_argument("--seconds", type=float, default=20.0, help="Length of the simulated run")
    parser.add_argument("--events-per-second", type=float, default=1.5, help="Telemetry event rate")
    parser.add_argument("--latency", type=float, default=2.0, help="Simulated API latency per call (dry-run)")
    parser.add_argument("--fail-rate", type=float, default=0.0, help="Share of chat calls that fail (dry-run)")
    parser.add_argument("--fps", type=int, default=30, help="Game loop tick rate")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--quiet-loop", action="store_true", help="Only warnings from the narration loop thread")
    parser.add_argument("--log-file", action="store_true", help="Also write a run log under data/runs/")
    args = parser.parse_args(argv)

    setup_logger(
        verbose=args.verbose,
        save_to_file=args.log_file,
        loop_level=logging.WARNING if args.quiet_loop else None,
    )
    logger = logging.getLogger("duocaster.main")
    random.seed(args.seed)

    config = NarrationConfig.from_env()
    if config.api_key:
        transport = GenerationAPIClient(api_key=config.api_key, base_url=config.api_base_url)
    else:
        logger.warning("DUOCASTER_API_KEY not set. Using dry-run generation.")
        transport = FlakyClient(args.fail_rate, dry_run=True, dry_run_latency_s=args.latency)

    subtitles = RecordingSubtitleView()
    audio = RecordingAudioSink()
    director = CommentaryDirector(config, transport=transport, subtitle_view=subtitles, audio_sink=audio)

    start = time.monotonic()
    director.start_run(segment_name="canyon")
    frame = 1.0 / max(1, args.fps)
    try:
        while time.monotonic() - start < args.seconds:
            now = time.monotonic()
            if random.random() < args.events_per_second * frame:
                director.submit(random_event(now))
            director.update_context(score_streak=int(now - start))
            director.tick(now)
            time.sleep(frame)
    except KeyboardInterrupt:
        logger.info("Run interrupted by user")
    except Exception as e:
        logger.error(f"Run error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        director.close()

    voiced = len(audio.clips)
    logger.info(
        f"Run complete: {len(subtitles.lines)} lines, {voiced} voiced, "
        f"intake stats {director.intake.stats.to_dict()}"
    )


if __name__ == "__main__":
    main()
