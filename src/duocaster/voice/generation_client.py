"""Generation API client for duocaster narration.

Wraps the two calls a commentary turn needs:
- Chat: prompt + persona session id -> generated line (and session id)
- Speech: line + voice settings -> encoded audio payload

Supports a dry-run mode for development without API calls: replies are
assembled from the prompt and audio is a short silent WAV.

Usage:
    from duocaster.voice import GenerationAPIClient

    client = GenerationAPIClient(api_key="your-key")
    reply = await client.chat(prompt_text, session_id=None, character_id="...")
    audio = await client.synthesize(reply.text, voice_id="george")
    await client.close()
"""

import asyncio
import base64
import binascii
import logging
import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import aiohttp

from ..core.errors import (
    AudioDecodeError,
    GenerationAPIError,
    RateLimitedError,
    SessionExpiredError,
)
from .audio import make_silent_wav

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    """Result from a chat request."""
    text: str
    session_id: Optional[str]
    latency_ms: Optional[float] = None
    is_dry_run: bool = False


@dataclass
class UsageStats:
    """Track API usage for monitoring."""
    chat_requests: int = 0
    speech_requests: int = 0
    characters_synthesized: int = 0
    errors_by_status: Dict[int, int] = field(default_factory=dict)

    def record_error(self, status: int):
        self.errors_by_status[status] = self.errors_by_status.get(status, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chat_requests": self.chat_requests,
            "speech_requests": self.speech_requests,
            "characters_synthesized": self.characters_synthesized,
            "errors_by_status": dict(self.errors_by_status),
        }


@runtime_checkable
class GenerationTransport(Protocol):
    """What the narration client needs from the generation API.

    Both calls must be safe to retry.
    """

    async def chat(self, prompt_text: str, session_id: Optional[str], character_id: str) -> ChatReply:
        ...

    async def synthesize(self, text: str, voice_id: str, emotion: Optional[str] = None) -> bytes:
        ...

    async def close(self) -> None:
        ...


class GenerationAPIClient:
    """aiohttp client for the character chat and speech endpoints."""

    DEFAULT_BASE_URL = "https://api.convai.com"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dry_run: bool = False,
        dry_run_latency_s: float = 0.0,
        audio_format: str = "wav",
        log_requests: bool = True,
    ):
        """Initialize the generation client.

        Args:
            api_key: API key. If None, will check DUOCASTER_API_KEY env var.
            base_url: API root URL.
            dry_run: If True, simulate API calls without making them.
            dry_run_latency_s: Simulated latency per dry-run call.
            audio_format: Encoding requested from the speech endpoint.
            log_requests: Whether to log API requests.
        """
        self.api_key = api_key or os.environ.get("DUOCASTER_API_KEY")
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.dry_run = dry_run
        self.dry_run_latency_s = dry_run_latency_s
        self.audio_format = audio_format
        self.log_requests = log_requests
        self.usage_stats = UsageStats()

        self._session: Optional[aiohttp.ClientSession] = None
        self._dry_run_sessions = 0

        if not self.api_key and not self.dry_run:
            logger.warning(
                "No generation API key provided. Set DUOCASTER_API_KEY or "
                "pass api_key parameter. Using dry_run mode."
            )
            self.dry_run = True

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session.

        Sessions are bound to the event loop that created them, so the
        client must be used from a single loop.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"CONVAI-API-KEY": self.api_key or ""}
            )
        return self._session

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _raise_for_status(self, response: aiohttp.ClientResponse, had_session: bool):
        if 200 <= response.status < 300:
            return
        error_text = await response.text()
        self.usage_stats.record_error(response.status)
        logger.warning(f"Generation API error: {response.status} - {error_text[:200]}")
        if response.status == 429:
            raise RateLimitedError(response.status, error_text)
        if had_session and response.status in (401, 404, 410):
            raise SessionExpiredError(response.status, error_text)
        raise GenerationAPIError(response.status, error_text)

    # =========================================================================
    # CHAT
    # =========================================================================

    async def chat(
        self,
        prompt_text: str,
        session_id: Optional[str],
        character_id: str,
    ) -> ChatReply:
        """Generate one commentary line.

        Args:
            prompt_text: Rendered prompt for the speaking persona
            session_id: Persona's conversation session (None starts a new one)
            character_id: Persona's character on the API

        Returns:
            ChatReply with the generated text and the session id to reuse
        """
        self.usage_stats.chat_requests += 1
        if self.log_requests:
            logger.debug(f"Chat request: character={character_id}, session={session_id}, {len(prompt_text)} chars")

        if self.dry_run:
            if self.dry_run_latency_s:
                await asyncio.sleep(self.dry_run_latency_s)
            if session_id is None:
                self._dry_run_sessions += 1
                session_id = f"dry-{character_id[:6]}-{self._dry_run_sessions}"
            return ChatReply(
                text=self._mock_line(prompt_text),
                session_id=session_id,
                is_dry_run=True,
            )

        session = await self._get_session()
        payload = {
            "charID": character_id,
            "sessionID": session_id or "-1",
            "userText": prompt_text,
            "voiceResponse": "False",
        }

        start_time = time.monotonic()
        async with session.post(f"{self.base_url}/character/getResponse", data=payload) as response:
            await self._raise_for_status(response, had_session=session_id is not None)
            data = await response.json(content_type=None)
        latency_ms = (time.monotonic() - start_time) * 1000

        text = (data.get("text") or "").strip()
        if not text:
            raise GenerationAPIError(response.status, "empty chat response")
        return ChatReply(
            text=text,
            session_id=data.get("sessionID") or session_id,
            latency_ms=latency_ms,
        )

    # =========================================================================
    # SPEECH
    # =========================================================================

    async def synthesize(self, text: str, voice_id: str, emotion: Optional[str] = None) -> bytes:
        """Synthesize ``text`` and return the encoded audio payload.

        Raises:
            AudioDecodeError: if the response body does not carry valid base64 audio
        """
        self.usage_stats.speech_requests += 1
        self.usage_stats.characters_synthesized += len(text)
        if self.log_requests:
            logger.debug(f"TTS request: {len(text)} chars, voice={voice_id}, emotion={emotion}")

        if self.dry_run:
            if self.dry_run_latency_s:
                await asyncio.sleep(self.dry_run_latency_s)
            return make_silent_wav(self._estimate_duration(text))

        session = await self._get_session()
        payload = {
            "transcript": text,
            "voice": voice_id,
            "encoding": self.audio_format,
        }
        if emotion:
            payload["emotion"] = emotion

        async with session.post(f"{self.base_url}/tts", json=payload) as response:
            await self._raise_for_status(response, had_session=False)
            data = await response.json(content_type=None)

        encoded = data.get("audio") if isinstance(data, dict) else None
        if not encoded:
            raise AudioDecodeError("speech response carried no audio")
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AudioDecodeError(f"invalid base64 audio: {e}") from e

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _estimate_duration(self, text: str) -> float:
        """Estimate audio duration from text length (~750 chars/min)."""
        return (len(text) / 750) * 60

    def _mock_line(self, prompt_text: str) -> str:
        summary = "that"
        for line in prompt_text.splitlines():
            if line.startswith("**What just happened**:"):
                summary = line.split(":", 1)[1].strip().rstrip(".")
                break
        return random.choice([
            f"Did you see that? {summary.capitalize()}!",
            f"Well, {summary}. Noted.",
            f"Unbelievable, {summary}!",
        ])

    def get_usage_stats(self) -> Dict[str, Any]:
        return self.usage_stats.to_dict()


def create_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    dry_run: Optional[bool] = None,
) -> GenerationAPIClient:
    """Create a generation client, dry-run when no API key is available."""
    if dry_run is None:
        dry_run = api_key is None and not os.environ.get("DUOCASTER_API_KEY")

    return GenerationAPIClient(
        api_key=api_key,
        base_url=base_url,
        dry_run=dry_run,
    )
