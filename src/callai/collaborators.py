"""Contracts the call core consumes.

Each vendor client or transport implements one of these; the turn processor
only ever talks to the protocol, so vendors swap without touching it.
"""

from typing import AsyncIterator, Protocol


class SpeechToText(Protocol):
    async def transcribe(self, audio: bytes, language: str) -> str:
        """Text for a WAV utterance. Returns "" on any failure."""


class ReplyGenerator(Protocol):
    async def generate_reply(self, messages: list[dict]) -> str:
        ...

    def stream_reply(self, messages: list[dict]) -> AsyncIterator[str]:
        ...


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str) -> bytes:
        """Audio in the vendor's native encoding."""


class AudioTranscoder(Protocol):
    async def to_mulaw(self, audio: bytes) -> bytes:
        """8 kHz mono mu-law for the telephony transport."""


class EventLogger(Protocol):
    def log_event(self, event_type: str, payload: dict) -> None:
        """Fire-and-forget; must never raise."""

    async def send_call_summary(self, summary: dict) -> None:
        ...


class OutboundTransport(Protocol):
    async def send(self, payload: str) -> bool:
        """Send one base64 media payload. Returns False on failure."""
