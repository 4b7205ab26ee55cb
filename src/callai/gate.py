"""Inbound audio buffering and end-of-utterance detection.

Frames are buffered while the caller talks.  Every voiced frame (RMS above
the threshold) restarts a silence timer once enough audio is buffered; a run
of quiet frames lets the timer expire, and expiry hands the buffer to the
turn callback.  A full buffer is flushed immediately so a VAD that never
sees a pause cannot hold the caller forever.

Only one turn runs at a time.  A trigger that fires while a turn is in
flight leaves the buffer alone, and the frames are picked up by the check
that runs when the current turn finishes.  No turn takes more than
``max_buffer_size`` frames; a longer backlog is split across turns.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from callai.audio import has_voice

logger = logging.getLogger(__name__)


class AudioIngestGate:
    def __init__(
        self,
        on_turn: Callable[[list[str]], Awaitable[None]],
        *,
        silence_timeout_ms: int = 400,
        min_audio_chunks: int = 10,
        max_buffer_size: int = 60,
        vad_threshold: int = 300,
        voice_detector: Callable[[str, int], bool] = has_voice,
    ):
        self.on_turn = on_turn
        self.silence_timeout_ms = silence_timeout_ms
        self.min_audio_chunks = min_audio_chunks
        self.max_buffer_size = max_buffer_size
        self.vad_threshold = vad_threshold
        self.voice_detector = voice_detector

        self.buffer: list[str] = []
        self.is_ai_speaking = False
        self.is_processing_turn = False
        self.closed = False

        self.frames_received = 0
        self.frames_dropped = 0
        self.forced_flushes = 0
        self.discarded_buffers = 0
        self.turns_started = 0

        self._silence_timer: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def has_pending_timer(self) -> bool:
        return self._silence_timer is not None and not self._silence_timer.done()

    def ingest(self, frame: str) -> None:
        """Accept one inbound frame. Must be called from the event loop."""
        if self.closed:
            return
        self.frames_received += 1
        if self.is_ai_speaking:
            self.frames_dropped += 1
            return

        self.buffer.append(frame)

        if len(self.buffer) >= self.max_buffer_size:
            self.cancel_silence_timer()
            if self.is_processing_turn:
                return
            self.forced_flushes += 1
            logger.info("Buffer full (%d frames), forcing turn", len(self.buffer))
            self._spawn(self.trigger())
            return

        if self.voice_detector(frame, self.vad_threshold):
            self.cancel_silence_timer()
            if len(self.buffer) >= self.min_audio_chunks:
                self._schedule_silence_timer()

    def cancel_silence_timer(self) -> None:
        if self._silence_timer is not None:
            self._silence_timer.cancel()
            self._silence_timer = None

    def _schedule_silence_timer(self) -> None:
        self.cancel_silence_timer()
        self._silence_timer = self._spawn(self._silence_elapsed())

    async def _silence_elapsed(self) -> None:
        await asyncio.sleep(self.silence_timeout_ms / 1000)
        # Detach first so a later cancel cannot interrupt the turn itself.
        self._silence_timer = None
        await self.trigger()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def trigger(self) -> None:
        """Hand the buffered utterance to the turn callback, once at a time."""
        if self.is_processing_turn:
            logger.debug("Turn in flight, deferring %d buffered frames", len(self.buffer))
            return
        if len(self.buffer) < self.min_audio_chunks:
            if self.buffer:
                self.discarded_buffers += 1
                logger.debug("Discarding %d frames (below %d)", len(self.buffer), self.min_audio_chunks)
            self.buffer = []
            return

        # Frames deferred behind a slow turn can exceed the cap; the rest waits for the next turn.
        frames = self.buffer[: self.max_buffer_size]
        self.buffer = self.buffer[self.max_buffer_size :]
        self.is_processing_turn = True
        self.turns_started += 1
        try:
            await self.on_turn(frames)
        except Exception:
            logger.exception("Turn callback raised")
        finally:
            self.is_processing_turn = False
            self._resume_deferred()

    def _resume_deferred(self) -> None:
        if self.closed or self.has_pending_timer:
            return
        if len(self.buffer) >= self.max_buffer_size:
            self.forced_flushes += 1
            self._spawn(self.trigger())
        elif len(self.buffer) >= self.min_audio_chunks:
            self._schedule_silence_timer()

    async def close(self) -> None:
        """Stop accepting audio and cancel the timer and any in-flight turn."""
        self.closed = True
        self.cancel_silence_timer()
        self.buffer = []
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
