import json
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from callai.tts import ELEVENLABS_TTS_URL, ElevenLabsTTS

URL = ELEVENLABS_TTS_URL.format(voice_id="voice-1")


class TestSynthesize:
    @respx.mock
    @pytest.mark.asyncio
    async def test_returns_audio(self):
        route = respx.post(URL).mock(return_value=httpx.Response(200, content=b"ID3mp3data"))
        tts = ElevenLabsTTS("xi-test", "voice-1")
        assert await tts.synthesize("שלום") == b"ID3mp3data"

        request = route.calls[0].request
        assert request.headers["xi-api-key"] == "xi-test"
        assert request.url.params["output_format"] == "mp3_44100_128"
        body = json.loads(request.content)
        assert body["text"] == "שלום"
        assert body["model_id"] == "eleven_multilingual_v2"
        assert body["voice_settings"]["stability"] == 0.35

    @respx.mock
    @pytest.mark.asyncio
    async def test_error_raises(self):
        respx.post(URL).mock(return_value=httpx.Response(401))
        with pytest.raises(httpx.HTTPStatusError):
            await ElevenLabsTTS("bad", "voice-1").synthesize("שלום")


class TestNikud:
    @respx.mock
    @pytest.mark.asyncio
    async def test_vowelized_text_is_synthesized(self):
        route = respx.post(URL).mock(return_value=httpx.Response(200, content=b"mp3"))
        nikud = AsyncMock()
        nikud.complete = AsyncMock(return_value="שָׁלוֹם")
        await ElevenLabsTTS("xi", "voice-1", nikud_llm=nikud).synthesize("שלום")
        assert json.loads(route.calls[0].request.content)["text"] == "שָׁלוֹם"
        assert nikud.complete.call_args.kwargs["temperature"] == 0.3

    @respx.mock
    @pytest.mark.asyncio
    async def test_nikud_failure_uses_plain_text(self):
        route = respx.post(URL).mock(return_value=httpx.Response(200, content=b"mp3"))
        nikud = AsyncMock()
        nikud.complete = AsyncMock(side_effect=httpx.ConnectError("down"))
        await ElevenLabsTTS("xi", "voice-1", nikud_llm=nikud).synthesize("שלום")
        assert json.loads(route.calls[0].request.content)["text"] == "שלום"

    @pytest.mark.asyncio
    async def test_no_nikud_llm_is_passthrough(self):
        assert await ElevenLabsTTS("xi", "voice-1").add_nikud("שלום") == "שלום"
