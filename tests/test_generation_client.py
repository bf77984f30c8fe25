"""Tests for the generation API client and audio decoding."""

import asyncio
import base64

import pytest
from aiohttp import test_utils, web
from src.duocaster.core.errors import (
    AudioDecodeError,
    GenerationAPIError,
    RateLimitedError,
    SessionExpiredError,
)
from src.duocaster.voice.audio import decode_audio_payload, make_silent_wav
from src.duocaster.voice.generation_client import GenerationAPIClient, create_client

from conftest import make_wav_bytes

PROMPT = "Say something.\n\n**What just happened**: player made a huge jump.\n"


def run_against(app: web.Application, scenario):
    """Run ``scenario(client)`` against a local server hosting ``app``."""

    async def main():
        server = test_utils.TestServer(app)
        await server.start_server()
        client = GenerationAPIClient(api_key="test_key", base_url=str(server.make_url("/")))
        try:
            return await scenario(client)
        finally:
            await client.close()
            await server.close()

    return asyncio.run(main())


def make_app(chat_status: int = 200, tts_body=None, tts_status: int = 200, seen=None) -> web.Application:
    seen = seen if seen is not None else []

    async def chat(request):
        form = await request.post()
        seen.append(("chat", dict(form), request.headers.get("CONVAI-API-KEY")))
        if chat_status != 200:
            return web.Response(status=chat_status, text="nope")
        return web.json_response({"text": " What a jump! ", "sessionID": "session-42"})

    async def tts(request):
        payload = await request.json()
        seen.append(("tts", payload, request.headers.get("CONVAI-API-KEY")))
        if tts_status != 200:
            return web.Response(status=tts_status, text="nope")
        body = tts_body if tts_body is not None else {"audio": base64.b64encode(make_wav_bytes()).decode()}
        return web.json_response(body)

    app = web.Application()
    app.router.add_post("/character/getResponse", chat)
    app.router.add_post("/tts", tts)
    return app


class TestDryRun:
    """Tests for dry-run mode."""

    def test_no_key_falls_back_to_dry_run(self, monkeypatch):
        monkeypatch.delenv("DUOCASTER_API_KEY", raising=False)
        client = GenerationAPIClient()

        assert client.dry_run

    def test_create_client_without_key(self, monkeypatch):
        monkeypatch.delenv("DUOCASTER_API_KEY", raising=False)
        assert create_client().dry_run
        assert not create_client(api_key="k").dry_run

    def test_dry_run_chat(self):
        """Test that a dry-run reply reuses the event summary and opens a session."""
        client = GenerationAPIClient(dry_run=True)

        reply = asyncio.run(client.chat(PROMPT, None, "cmlarc6fv0003l404isl4cdxl"))
        again = asyncio.run(client.chat(PROMPT, reply.session_id, "cmlarc6fv0003l404isl4cdxl"))

        assert reply.is_dry_run
        assert "jump" in reply.text.lower()
        assert reply.session_id == "dry-cmlarc-1"
        assert again.session_id == reply.session_id
        assert client.get_usage_stats()["chat_requests"] == 2

    def test_dry_run_speech_is_decodable(self):
        client = GenerationAPIClient(dry_run=True)

        payload = asyncio.run(client.synthesize("Did you see that?", "george"))
        clip = decode_audio_payload(payload)

        assert clip.duration_s > 0
        assert client.usage_stats.characters_synthesized == len("Did you see that?")


class TestChat:
    """Tests for the chat endpoint."""

    def test_chat_success(self):
        seen = []

        async def scenario(client):
            return await client.chat(PROMPT, None, "char-1")

        reply = run_against(make_app(seen=seen), scenario)

        assert reply.text == "What a jump!"
        assert reply.session_id == "session-42"
        assert reply.latency_ms is not None
        kind, form, api_key = seen[0]
        assert form["charID"] == "char-1"
        assert form["sessionID"] == "-1"
        assert form["userText"] == PROMPT
        assert api_key == "test_key"

    def test_chat_passes_session(self):
        seen = []

        async def scenario(client):
            return await client.chat(PROMPT, "session-7", "char-1")

        run_against(make_app(seen=seen), scenario)

        assert seen[0][1]["sessionID"] == "session-7"

    def test_unknown_session_is_expired(self):
        async def scenario(client):
            return await client.chat(PROMPT, "session-7", "char-1")

        with pytest.raises(SessionExpiredError):
            run_against(make_app(chat_status=404), scenario)

    def test_not_found_without_session_is_plain_error(self):
        async def scenario(client):
            return await client.chat(PROMPT, None, "char-1")

        with pytest.raises(GenerationAPIError) as excinfo:
            run_against(make_app(chat_status=404), scenario)
        assert not isinstance(excinfo.value, SessionExpiredError)
        assert excinfo.value.status_code == 404

    def test_rate_limited(self):
        async def scenario(client):
            try:
                await client.chat(PROMPT, None, "char-1")
            finally:
                assert client.usage_stats.errors_by_status == {429: 1}

        with pytest.raises(RateLimitedError):
            run_against(make_app(chat_status=429), scenario)


class TestSpeech:
    """Tests for the speech endpoint."""

    def test_synthesize_returns_audio_bytes(self):
        seen = []

        async def scenario(client):
            return await client.synthesize("What a jump!", "george", emotion="Amazed")

        payload = run_against(make_app(seen=seen), scenario)

        assert decode_audio_payload(payload).frame_rate == 16000
        kind, body, _ = seen[0]
        assert body == {"transcript": "What a jump!", "voice": "george", "encoding": "wav", "emotion": "Amazed"}

    def test_invalid_base64_is_decode_error(self):
        async def scenario(client):
            return await client.synthesize("Hi", "george")

        with pytest.raises(AudioDecodeError):
            run_against(make_app(tts_body={"audio": "***not base64***"}), scenario)

    def test_missing_audio_is_decode_error(self):
        async def scenario(client):
            return await client.synthesize("Hi", "george")

        with pytest.raises(AudioDecodeError):
            run_against(make_app(tts_body={}), scenario)

    def test_server_error(self):
        async def scenario(client):
            return await client.synthesize("Hi", "george")

        with pytest.raises(GenerationAPIError):
            run_against(make_app(tts_status=500), scenario)


class TestAudioDecoding:
    """Tests for decode_audio_payload."""

    def test_decodes_wav(self):
        clip = decode_audio_payload(make_wav_bytes(0.25, frame_rate=22050))

        assert clip.frame_rate == 22050
        assert clip.channels == 1
        assert clip.sample_width == 2
        assert abs(clip.duration_s - 0.25) < 0.01
        assert len(clip.raw_data) == int(0.25 * 22050) * 2

    def test_empty_payload(self):
        with pytest.raises(AudioDecodeError):
            decode_audio_payload(b"")

    def test_malformed_payload(self):
        with pytest.raises(AudioDecodeError):
            decode_audio_payload(b"RIFF\x00\x00garbage that is not audio")

    def test_silent_wav_duration(self):
        clip = decode_audio_payload(make_silent_wav(0.5))
        assert abs(clip.duration_s - 0.5) < 0.01
