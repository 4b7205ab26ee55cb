import logging
import time
from abc import ABC, abstractmethod

import httpx

from callai.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

WHISPER_URL = "https://api.openai.com/v1/audio/transcriptions"
ELEVENLABS_STT_URL = "https://api.elevenlabs.io/v1/speech-to-text"


class _HTTPTranscriber(ABC):
    """Shared plumbing: owned-or-injected httpx client and the fail-closed wrapper."""

    label = "STT"

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        await self._client.aclose()

    @abstractmethod
    async def transcribe_or_raise(self, audio: bytes, language: str) -> str:
        """Vendor call; raises on any failure."""

    async def transcribe(self, audio: bytes, language: str = "he") -> str:
        """Fail closed: any vendor error is logged and reported as no speech."""
        start = time.monotonic()
        try:
            text = await self.transcribe_or_raise(audio, language)
        except Exception as e:
            logger.error("%s transcription failed: %s", self.label, e)
            return ""
        logger.info(
            "%s: %d bytes -> %d chars in %.0fms",
            self.label, len(audio), len(text), (time.monotonic() - start) * 1000,
        )
        return text


class WhisperSTT(_HTTPTranscriber):
    """OpenAI Whisper transcription over multipart upload."""

    label = "Whisper"

    def __init__(self, api_key: str, model: str = "whisper-1", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model

    async def transcribe_or_raise(self, audio: bytes, language: str) -> str:
        resp = await self._client.post(
            WHISPER_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            files={"file": ("audio.wav", audio, "audio/wav")},
            data={
                "model": self.model,
                "language": language,
                "response_format": "json",
            },
        )
        resp.raise_for_status()
        return (resp.json().get("text") or "").strip()


class ElevenLabsSTT(_HTTPTranscriber):
    label = "ElevenLabs STT"

    def __init__(self, api_key: str, model: str = "scribe_v1", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model

    async def transcribe_or_raise(self, audio: bytes, language: str) -> str:
        resp = await self._client.post(
            ELEVENLABS_STT_URL,
            headers={"xi-api-key": self.api_key},
            files={"file": ("audio.wav", audio, "audio/wav")},
            data={"model_id": self.model, "language_code": language},
        )
        resp.raise_for_status()
        return (resp.json().get("text") or "").strip()


class FailoverSTT:
    """Primary transcriber with a secondary that takes over after repeated failures.

    An empty transcript from a healthy primary is silence, not a failure;
    only raised errors and timeouts count against the circuit.
    """

    def __init__(
        self,
        *,
        primary: _HTTPTranscriber,
        secondary: _HTTPTranscriber,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
    ):
        self.primary = primary
        self.secondary = secondary
        self._circuit = CircuitBreaker(
            failure_threshold=failure_threshold,
            cooldown_seconds=cooldown_seconds,
            label=primary.label,
        )

    async def close(self):
        await self.primary.close()
        await self.secondary.close()

    async def transcribe(self, audio: bytes, language: str = "he") -> str:
        if self._circuit.allows_primary():
            try:
                text = await self.primary.transcribe_or_raise(audio, language)
            except Exception as e:
                self._circuit.record_failure()
                logger.warning("%s failed, trying %s: %s", self.primary.label, self.secondary.label, e)
            else:
                self._circuit.record_success()
                return text
        return await self.secondary.transcribe(audio, language)
