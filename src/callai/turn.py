import asyncio
import logging
import time
from typing import Optional

from callai.audio import chunk_payloads, decode_frames, mulaw_to_wav
from callai.collaborators import (
    AudioTranscoder,
    EventLogger,
    OutboundTransport,
    ReplyGenerator,
    SpeechSynthesizer,
    SpeechToText,
)
from callai.flow import ConversationFlowEngine
from callai.gate import AudioIngestGate
from callai.memory import ConversationMemory, Outcome
from callai.prompts import build_messages
from callai.summary import build_call_summary

logger = logging.getLogger(__name__)

APOLOGY = "סליחה, הייתה לי בעיה טכנית. אפשר לחזור על זה?"
GREETING = "היי! נעים מאוד. איך קוראים לך?"


def _ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


class TurnProcessor:
    """Runs one conversation turn from buffered audio to spoken reply.

    The gate guarantees a single turn at a time; this class only has to
    keep the order of side effects right.  The customer's words are
    committed to memory before the reply is generated, so an empty or
    failed reply never erases the fact that they spoke.
    """

    def __init__(
        self,
        memory: ConversationMemory,
        flow: ConversationFlowEngine,
        gate: AudioIngestGate,
        *,
        stt: SpeechToText,
        llm: ReplyGenerator,
        tts: SpeechSynthesizer,
        transcoder: AudioTranscoder,
        transport: OutboundTransport,
        events: EventLogger,
        language: str = "he",
        agent_name: str = "דני",
        recent_messages: int = 6,
        chunk_bytes: int = 160,
        chunk_delay_ms: int = 20,
    ):
        self.memory = memory
        self.flow = flow
        self.gate = gate
        self.stt = stt
        self.llm = llm
        self.tts = tts
        self.transcoder = transcoder
        self.transport = transport
        self.events = events
        self.language = language
        self.agent_name = agent_name
        self.recent_messages = recent_messages
        self.chunk_bytes = chunk_bytes
        self.chunk_delay_ms = chunk_delay_ms

        self._summary: Optional[asyncio.Task] = None
        # One writer on the outbound stream: greeting, reply and apology queue here.
        self._playback = asyncio.Lock()
        self.completed_turns = 0
        self.failed_turns = 0

    @property
    def summary_sent(self) -> bool:
        return self._summary is not None

    async def process_turn(self, frames: list[str]) -> None:
        if self.flow.is_final():
            logger.info("[%s] Call already complete, ignoring %d frames", self.flow.stage.value, len(frames))
            return

        started = time.monotonic()
        timings = {}
        try:
            await self._run_turn(frames, started, timings)
        except Exception as e:
            self.failed_turns += 1
            logger.exception("[%s] Turn failed: %s", self.flow.stage.value, e)
            self.events.log_event("turn.failed", {
                "callId": self.memory.call_id,
                "stage": self.flow.stage.value,
                "error": str(e),
            })
            await self.apologize()

        if self.flow.is_final():
            await self.finish_call()

    async def _run_turn(self, frames: list[str], started: float, timings: dict) -> None:
        wav = mulaw_to_wav(decode_frames(frames))

        step = time.monotonic()
        text = (await self.stt.transcribe(wav, self.language)).strip()
        timings["stt_ms"] = _ms(step)
        if not text:
            logger.info("No speech detected in %d frames (%dms)", len(frames), timings["stt_ms"])
            return

        stage_before = self.flow.stage
        logger.info("[%s] Customer: %s", stage_before.value, text)
        self.memory.record_utterance(text)
        transition = self.flow.process_transition(text)
        if transition is not None:
            logger.info(
                "[%s] -> [%s]%s",
                stage_before.value,
                transition.target.value,
                " (max turns)" if transition.forced else "",
            )

        step = time.monotonic()
        messages = build_messages(self.memory, text, self.agent_name, self.recent_messages)
        reply = (await self.llm.generate_reply(messages) or "").strip()
        timings["llm_ms"] = _ms(step)
        if not reply:
            logger.warning("[%s] Empty reply from LLM, skipping playback", self.flow.stage.value)
            return

        self.memory.record_reply(reply)
        logger.info("[%s] Agent: %s", self.flow.stage.value, reply)

        step = time.monotonic()
        await self.speak(reply)
        timings["tts_ms"] = _ms(step)
        timings["total_ms"] = _ms(started)

        self.completed_turns += 1
        logger.info(
            "Turn %d: STT %dms, LLM %dms, TTS+playback %dms, total %dms",
            self.completed_turns,
            timings["stt_ms"],
            timings["llm_ms"],
            timings["tts_ms"],
            timings["total_ms"],
        )
        self.events.log_event("turn.completed", {
            "callId": self.memory.call_id,
            "stage": self.flow.stage.value,
            "userText": text,
            "agentText": reply,
            "timings": timings,
        })

    async def speak(self, text: str) -> None:
        audio = await self.tts.synthesize(text)
        mulaw = await self.transcoder.to_mulaw(audio)
        await self.play(mulaw)

    async def play(self, mulaw: bytes) -> int:
        """Stream audio to the caller at a fixed cadence with inbound audio muted."""
        sent = 0
        async with self._playback:
            self.gate.is_ai_speaking = True
            try:
                for payload in chunk_payloads(mulaw, self.chunk_bytes):
                    if not await self.transport.send(payload):
                        logger.warning("Transport rejected audio after %d chunks, stopping playback", sent)
                        break
                    sent += 1
                    await asyncio.sleep(self.chunk_delay_ms / 1000)
            finally:
                self.gate.is_ai_speaking = False
        return sent

    async def apologize(self) -> None:
        try:
            await self.speak(APOLOGY)
        except Exception as e:
            logger.warning("Apology playback failed: %s", e)

    async def greet(self) -> None:
        self.memory.record_reply(GREETING)
        logger.info("[%s] Agent: %s", self.flow.stage.value, GREETING)
        try:
            await self.speak(GREETING)
        except Exception as e:
            logger.error("Greeting playback failed: %s", e)

    async def finish_call(self) -> None:
        """Send the end-of-call summary. Runs at most once per call.

        The send lives in its own task so a hang-up that cancels the caller
        does not cancel the delivery; teardown awaits the same task.
        """
        if self._summary is None:
            if self.memory.outcome is None:
                self.memory.set_outcome(Outcome.INCOMPLETE)
            logger.info("Call %s finished: %s", self.memory.call_id, self.memory.outcome.value)
            self._summary = asyncio.get_running_loop().create_task(
                self.events.send_call_summary(build_call_summary(self.memory))
            )
        await asyncio.shield(self._summary)
