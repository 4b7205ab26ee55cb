import asyncio
import logging
import time
from typing import Callable, Optional

from callai.collaborators import (
    AudioTranscoder,
    EventLogger,
    OutboundTransport,
    ReplyGenerator,
    SpeechSynthesizer,
    SpeechToText,
)
from callai.config import Settings
from callai.flow import ConversationFlowEngine
from callai.gate import AudioIngestGate
from callai.keywords import KeywordTables
from callai.memory import ConversationMemory
from callai.signals import SignalExtractor
from callai.summary import quick_summary
from callai.turn import TurnProcessor

logger = logging.getLogger(__name__)


class CallSession:
    """Everything one phone call owns.

    Each call gets its own memory, flow engine, gate and turn processor;
    nothing mutable is shared between calls.
    """

    def __init__(
        self,
        call_id: str,
        transport: OutboundTransport,
        *,
        stt: SpeechToText,
        llm: ReplyGenerator,
        tts: SpeechSynthesizer,
        transcoder: AudioTranscoder,
        events: EventLogger,
        settings: Optional[Settings] = None,
        tables: Optional[KeywordTables] = None,
        stream_id: str = "",
        caller: str = "",
        clock: Callable[[], float] = time.time,
    ):
        settings = settings or Settings()
        self.call_id = call_id
        self.stream_id = stream_id
        self.events = events
        self.closed = False
        self._greeting: Optional[asyncio.Task] = None

        self.memory = ConversationMemory(call_id=call_id, extractor=SignalExtractor(tables), clock=clock)
        if caller:
            self.memory.customer.phone = caller
        self.flow = ConversationFlowEngine(self.memory)
        self.gate = AudioIngestGate(
            self._on_turn,
            silence_timeout_ms=settings.silence_timeout_ms,
            min_audio_chunks=settings.min_audio_chunks,
            max_buffer_size=settings.max_buffer_size,
            vad_threshold=settings.vad_rms_threshold,
        )
        self.processor = TurnProcessor(
            self.memory,
            self.flow,
            self.gate,
            stt=stt,
            llm=llm,
            tts=tts,
            transcoder=transcoder,
            transport=transport,
            events=events,
            language=settings.language,
            agent_name=settings.agent_name,
            recent_messages=settings.recent_messages,
            chunk_bytes=settings.outbound_chunk_bytes,
            chunk_delay_ms=settings.outbound_chunk_delay_ms,
        )

    async def _on_turn(self, frames: list[str]) -> None:
        await self.processor.process_turn(frames)

    def start(self) -> asyncio.Task:
        """Announce the call and play the greeting in the background."""
        logger.info("Call started: %s (stream %s)", self.call_id, self.stream_id)
        self.events.log_event("call.started", {"callSid": self.call_id, "streamSid": self.stream_id})
        self._greeting = asyncio.get_running_loop().create_task(self.processor.greet())
        return self._greeting

    def ingest(self, payload: str) -> None:
        self.gate.ingest(payload)

    async def close(self) -> None:
        """Tear the call down. Safe to call more than once; only the first call acts."""
        if self.closed:
            return
        self.closed = True
        if self._greeting is not None and not self._greeting.done():
            self._greeting.cancel()
            await asyncio.gather(self._greeting, return_exceptions=True)
        await self.gate.close()

        # Also waits out a summary a terminal turn started before the hang-up.
        if self.processor.summary_sent or self.memory.turn_count > 0:
            await self.processor.finish_call()

        stats = self.stats()
        logger.info(
            "Call ended: %s after %.0fs, %d turns, stage %s, %d frames in, %d dropped while speaking",
            self.call_id,
            stats["duration"],
            stats["turns"],
            stats["stage"],
            self.gate.frames_received,
            self.gate.frames_dropped,
        )
        logger.info("Summary: %s", quick_summary(self.memory))
        self.events.log_event("call.ended", {"callSid": self.call_id, **stats})

    def stats(self) -> dict:
        return {
            "callId": self.call_id,
            "stage": self.flow.stage.value,
            "turns": self.memory.turn_count,
            "customerName": self.memory.customer.name,
            "sentiment": self.memory.sentiment.value,
            "outcome": self.memory.outcome.value if self.memory.outcome else None,
            "duration": round(self.memory.duration_seconds(), 1),
        }


class CallRegistry:
    """Active calls by id. Owned by the web app, never module-global."""

    def __init__(self):
        self._sessions: dict[str, CallSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._sessions

    def add(self, session: CallSession) -> None:
        if session.call_id in self._sessions:
            logger.warning("Replacing existing session for %s", session.call_id)
        self._sessions[session.call_id] = session

    def get(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_id)

    async def remove(self, call_id: str) -> None:
        session = self._sessions.pop(call_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for call_id in list(self._sessions):
            await self.remove(call_id)

    def stats(self) -> list[dict]:
        return [session.stats() for session in self._sessions.values()]
