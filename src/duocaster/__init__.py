"""duocaster: two-commentator runtime narration for action games."""

from .commentary import CommentaryDirector
from .core import GameEvent, NarrationConfig

__version__ = "0.1.0"

__all__ = ["CommentaryDirector", "GameEvent", "NarrationConfig", "__version__"]
