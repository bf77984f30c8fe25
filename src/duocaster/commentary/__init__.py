"""Commentary pipeline: intake, queue, scheduling, prompts, ordering, fallback."""

from .director import CommentaryDirector
from .fallback import DEFAULT_FALLBACK_LINE, FallbackBank
from .intake import EventIntake, IntakeStats
from .ordering import OrderingBuffer
from .prompt_builder import (
    FIRST_LINE_SENTINEL,
    PromptBuilder,
    PromptPayload,
    RunContext,
    StyleKnobs,
    summarize_event,
)
from .queue import CommentaryQueue
from .scheduler import TurnScheduler

__all__ = [
    "CommentaryDirector",
    "DEFAULT_FALLBACK_LINE",
    "FallbackBank",
    "EventIntake",
    "IntakeStats",
    "OrderingBuffer",
    "FIRST_LINE_SENTINEL",
    "PromptBuilder",
    "PromptPayload",
    "RunContext",
    "StyleKnobs",
    "summarize_event",
    "CommentaryQueue",
    "TurnScheduler",
]
