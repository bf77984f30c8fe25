"""Tests for prompt construction and fallback lines."""

from src.duocaster.commentary.fallback import DEFAULT_FALLBACK_LINE, FallbackBank
from src.duocaster.commentary.prompt_builder import (
    FIRST_LINE_SENTINEL,
    PromptBuilder,
    RunContext,
    summarize_event,
)
from src.duocaster.core.config import FallbackLines, default_commentators
from src.duocaster.core.enums import EventKind
from src.duocaster.core.events import GameEvent


class TestSummarizeEvent:
    """Tests for factual event summaries."""

    def test_jump_sizes(self):
        assert summarize_event(GameEvent.big_jump(0.0)) == "player made a big jump"
        assert summarize_event(GameEvent.huge_jump(0.0)) == "player made a huge jump"

    def test_payload_details(self):
        """Test that variant payloads show up in the summary."""
        assert summarize_event(GameEvent.kill(0.0, "drone")) == "player killed a drone"
        assert summarize_event(GameEvent.flip(0.0, 2)) == "player landed a double flip"
        assert summarize_event(GameEvent.flip(0.0, 5)) == "player landed 5 flips in one jump"
        assert summarize_event(GameEvent.speed(0.0, 3)) == "player reached speed tier 3"
        assert summarize_event(GameEvent.near_death(0.0, 0.08)) == "player is close to death at 8% health"

    def test_every_kind_has_a_summary(self):
        for kind in EventKind:
            assert summarize_event(GameEvent(kind, 0.0)).startswith(("player", "a crowd"))


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def setup_method(self):
        self.builder = PromptBuilder()
        self.george, self.jerry = default_commentators()
        self.context = RunContext(segment_name="canyon", score_streak=3, health=0.5, recent_events=("JumpBig",))

    def test_first_line_uses_sentinel(self):
        """Test that an absent other line becomes the first-line sentinel."""
        payload = self.builder.build(GameEvent.huge_jump(1.0), self.george, None, self.context)

        assert payload.other_line == FIRST_LINE_SENTINEL
        assert payload.is_first_line

    def test_blank_other_line_uses_sentinel(self):
        payload = self.builder.build(GameEvent.huge_jump(1.0), self.george, "   ", self.context)
        assert payload.is_first_line

    def test_other_line_is_carried(self):
        """Test that the other persona's last line is part of the prompt."""
        payload = self.builder.build(
            GameEvent.kill(1.0), self.jerry, "That was textbook.", self.context, other_persona_name="George"
        )
        text = payload.to_text()

        assert not payload.is_first_line
        assert "**George last said**: That was textbook." in text
        assert "You are jerry." in text

    def test_payload_fields(self):
        payload = self.builder.build(GameEvent.huge_jump(1.0), self.george, None, self.context)

        assert payload.persona_id == "commentator_a"
        assert payload.character_id == self.george.character_id
        assert payload.event_summary == "player made a huge jump"
        assert payload.style.tone == "analytical"
        assert payload.run_context is self.context

    def test_rendered_text_contains_context(self):
        text = self.builder.build(GameEvent.huge_jump(1.0), self.george, None, self.context).to_text()

        assert "**What just happened**: player made a huge jump." in text
        assert "- Segment: canyon" in text
        assert "- Player health: 50%" in text
        assert "- Recent events: JumpBig" in text
        assert "Pick one emotion from: Neutral, Concerned, Pleased, Confident." in text

    def test_deterministic(self):
        """Test that identical inputs give identical payloads."""
        first = self.builder.build(GameEvent.flip(2.0, 2), self.jerry, "Wow.", self.context, "George")
        second = self.builder.build(GameEvent.flip(2.0, 2), self.jerry, "Wow.", self.context, "George")

        assert first == second
        assert first.to_text() == second.to_text()


class TestFallbackBank:
    """Tests for FallbackBank."""

    def test_kind_pool_cycles(self):
        bank = FallbackBank(FallbackLines(lines=["Nice!"], by_kind={"jump": ["One", "Two"]}))

        assert [bank.pick(EventKind.JUMP) for _ in range(3)] == ["One", "Two", "One"]

    def test_generic_pool_for_unlisted_kind(self):
        bank = FallbackBank(FallbackLines(lines=["Nice!", "Sweet!"], by_kind={}))

        assert bank.pick(EventKind.WHEELIE_LONG) == "Nice!"
        assert bank.pick(EventKind.CRASH) == "Sweet!"

    def test_empty_pools_use_default_line(self):
        """Test that a fallback line is always available."""
        bank = FallbackBank(FallbackLines(lines=["  "], by_kind={"jump": []}))

        assert bank.pick(EventKind.JUMP) == DEFAULT_FALLBACK_LINE
        assert bank.pick_default() == DEFAULT_FALLBACK_LINE

    def test_random_mode_is_seedable(self):
        lines = FallbackLines(lines=["a", "b", "c", "d"], by_kind={})
        first = FallbackBank(lines, mode="random", seed=7)
        second = FallbackBank(lines, mode="random", seed=7)

        picks = [first.pick(EventKind.CRASH) for _ in range(10)]
        assert picks == [second.pick(EventKind.CRASH) for _ in range(10)]
        assert set(picks) <= {"a", "b", "c", "d"}

    def test_load_resets_cursors(self):
        bank = FallbackBank(FallbackLines(lines=["x", "y"], by_kind={}))
        bank.pick(EventKind.CRASH)

        bank.load(FallbackLines(lines=["x", "y"], by_kind={}))

        assert bank.pick(EventKind.CRASH) == "x"
