"""Pytest configuration and fixtures."""

import asyncio
import io
import threading
import time
import wave
from typing import Dict, List, Optional

import pytest
from src.duocaster.core.config import CommentaryConfig, NarrationConfig
from src.duocaster.core.errors import GenerationAPIError
from src.duocaster.voice.generation_client import ChatReply


def make_wav_bytes(duration_s: float = 0.1, frame_rate: int = 16000) -> bytes:
    """Encode a silent 16-bit mono WAV with the stdlib writer."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(frame_rate)
        wav.writeframes(b"\x00\x00" * int(duration_s * frame_rate))
    return buffer.getvalue()


class ManualClock:
    """Game clock that only moves when told to."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeTransport:
    """Scriptable stand-in for the generation API.

    ``chat_script`` maps a character id to a list of behaviours consumed one
    per chat call; the last one repeats. A behaviour is one of:
        ("ok", delay_s)              reply with a numbered line
        ("ok", delay_s, "text")      reply with the given text
        ("hang",)                    never answer within any sane timeout
        ("error", exception)         raise the exception
    """

    def __init__(
        self,
        chat_script: Optional[Dict[str, List[tuple]]] = None,
        audio: Optional[bytes] = None,
        speech_delay_s: float = 0.0,
    ):
        self.chat_script = chat_script or {}
        self.audio = make_wav_bytes() if audio is None else audio
        self.speech_delay_s = speech_delay_s

        self._lock = threading.Lock()
        self.chat_calls: List[tuple] = []  # (character_id, session_id)
        self.prompts: List[str] = []
        self.speech_calls: List[tuple] = []  # (text, voice_id, emotion)
        self.in_flight: Dict[str, int] = {}
        self.max_in_flight: Dict[str, int] = {}
        self.max_total_in_flight = 0
        self.closed = False

    def _behaviour(self, character_id: str) -> tuple:
        with self._lock:
            calls = sum(1 for c in self.chat_calls if c[0] == character_id)
        script = self.chat_script.get(character_id) or [("ok", 0.0)]
        return script[min(calls - 1, len(script) - 1)]

    def _enter(self, character_id: str) -> None:
        with self._lock:
            self.in_flight[character_id] = self.in_flight.get(character_id, 0) + 1
            self.max_in_flight[character_id] = max(
                self.max_in_flight.get(character_id, 0), self.in_flight[character_id]
            )
            self.max_total_in_flight = max(self.max_total_in_flight, sum(self.in_flight.values()))

    def _leave(self, character_id: str) -> None:
        with self._lock:
            self.in_flight[character_id] -= 1

    async def chat(self, prompt_text: str, session_id: Optional[str], character_id: str) -> ChatReply:
        with self._lock:
            self.chat_calls.append((character_id, session_id))
            self.prompts.append(prompt_text)
            number = len(self.chat_calls)
        behaviour = self._behaviour(character_id)

        self._enter(character_id)
        try:
            if behaviour[0] == "hang":
                await asyncio.sleep(60)
            if behaviour[0] == "error":
                raise behaviour[1]
            await asyncio.sleep(behaviour[1])
            text = behaviour[2] if len(behaviour) > 2 else f"{character_id} line {number}"
            return ChatReply(text=text, session_id=session_id or f"session-{character_id}")
        finally:
            self._leave(character_id)

    async def synthesize(self, text: str, voice_id: str, emotion: Optional[str] = None) -> bytes:
        with self._lock:
            self.speech_calls.append((text, voice_id, emotion))
        if self.speech_delay_s:
            await asyncio.sleep(self.speech_delay_s)
        return self.audio

    async def close(self) -> None:
        self.closed = True


def unavailable() -> GenerationAPIError:
    return GenerationAPIError(503, "unavailable")


def drive(director, clock: ManualClock, until, timeout: float = 5.0, step: float = 0.01) -> list:
    """Tick ``director`` in near real time until ``until()`` holds.

    Returns:
        Every result delivered while driving
    """
    delivered = []
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        clock.advance(step)
        delivered.extend(director.tick(clock()))
        if until():
            return delivered
        time.sleep(step)
    raise AssertionError("condition not reached while driving the director")


def wait_for_turns(client, count: int, timeout: float = 5.0) -> list:
    """Poll ``client`` until ``count`` finished turns came back."""
    finished = []
    end = time.monotonic() + timeout
    while len(finished) < count and time.monotonic() < end:
        finished.extend(client.poll_completed())
        time.sleep(0.005)
    return finished


@pytest.fixture
def commentary_config():
    """Create fast network timings for tests."""
    return CommentaryConfig(
        min_seconds_between_lines=0.0,
        max_attempts=2,
        retry_backoff_s=0.01,
        chat_timeout_s=0.2,
        audio_timeout_s=0.5,
        turn_deadline_s=2.0,
        hold_timeout_s=30.0,
    )


@pytest.fixture
def narration_config(commentary_config):
    """Create a test narration configuration."""
    return NarrationConfig(commentary=commentary_config, api_key="test_key")


@pytest.fixture
def clock():
    return ManualClock()
