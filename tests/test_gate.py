import asyncio
from unittest.mock import AsyncMock

import pytest

from callai.gate import AudioIngestGate
from tests.fakes import LOUD, QUIET


def make_gate(on_turn=None, **kwargs):
    params = dict(silence_timeout_ms=10, min_audio_chunks=3, max_buffer_size=6, vad_threshold=300)
    params.update(kwargs)
    return AudioIngestGate(on_turn or AsyncMock(), **params)


class TestSilenceTimer:
    @pytest.mark.asyncio
    async def test_silence_after_speech_triggers_turn(self):
        gate = make_gate()
        for frame in (LOUD, LOUD, LOUD, QUIET):
            gate.ingest(frame)
        await asyncio.sleep(0.05)
        gate.on_turn.assert_awaited_once_with([LOUD, LOUD, LOUD, QUIET])
        assert gate.buffer == []

    @pytest.mark.asyncio
    async def test_timer_waits_for_min_chunks(self):
        gate = make_gate()
        gate.ingest(LOUD)
        gate.ingest(LOUD)
        assert not gate.has_pending_timer
        gate.ingest(LOUD)
        assert gate.has_pending_timer
        await gate.close()

    @pytest.mark.asyncio
    async def test_quiet_frames_never_start_timer(self):
        gate = make_gate()
        for _ in range(5):
            gate.ingest(QUIET)
        assert not gate.has_pending_timer
        await asyncio.sleep(0.03)
        gate.on_turn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quiet_frames_do_not_reset_running_timer(self):
        gate = make_gate(silence_timeout_ms=20, max_buffer_size=100)
        for _ in range(3):
            gate.ingest(LOUD)
        timer = gate._silence_timer
        gate.ingest(QUIET)
        assert gate._silence_timer is timer
        await gate.close()

    @pytest.mark.asyncio
    async def test_voiced_frame_replaces_timer(self):
        gate = make_gate(silence_timeout_ms=50, max_buffer_size=100)
        for _ in range(3):
            gate.ingest(LOUD)
        first = gate._silence_timer
        gate.ingest(LOUD)
        await asyncio.sleep(0)
        assert first.cancelled()
        assert gate._silence_timer is not first
        await gate.close()


class TestForcedFlush:
    @pytest.mark.asyncio
    async def test_full_buffer_flushes_immediately(self):
        gate = make_gate()
        for _ in range(6):
            gate.ingest(QUIET)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        gate.on_turn.assert_awaited_once_with([QUIET] * 6)
        assert gate.forced_flushes == 1

    @pytest.mark.asyncio
    async def test_forced_flush_cancels_timer(self):
        gate = make_gate(silence_timeout_ms=1000)
        for _ in range(6):
            gate.ingest(LOUD)
        assert not gate.has_pending_timer
        await asyncio.sleep(0.01)
        assert gate.on_turn.await_count == 1


class TestShortBuffer:
    @pytest.mark.asyncio
    async def test_short_buffer_discarded_without_turn(self):
        gate = make_gate()
        gate.buffer = [LOUD, LOUD]
        await gate.trigger()
        gate.on_turn.assert_not_awaited()
        assert gate.buffer == []
        assert gate.discarded_buffers == 1


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_no_second_turn_while_processing(self):
        release = asyncio.Event()
        calls = []

        async def on_turn(frames):
            calls.append(frames)
            await release.wait()

        gate = make_gate(on_turn)
        for _ in range(6):
            gate.ingest(QUIET)
        await asyncio.sleep(0.01)
        assert gate.is_processing_turn
        assert len(calls) == 1

        for _ in range(6):
            gate.ingest(LOUD)
        await gate.trigger()
        await asyncio.sleep(0.01)
        assert len(calls) == 1
        assert gate.buffer == [LOUD] * 6

        release.set()
        await asyncio.sleep(0.05)
        assert len(calls) == 2
        assert calls[1] == [LOUD] * 6
        assert not gate.is_processing_turn

    @pytest.mark.asyncio
    async def test_backlog_split_into_capped_turns(self):
        release = asyncio.Event()
        sizes = []

        async def on_turn(frames):
            sizes.append(len(frames))
            await release.wait()

        gate = make_gate(on_turn)
        for _ in range(6):
            gate.ingest(LOUD)
        await asyncio.sleep(0.01)
        for _ in range(15):
            gate.ingest(LOUD)
        assert len(gate.buffer) == 15

        release.set()
        await asyncio.sleep(0.1)
        assert sizes == [6, 6, 6, 3]
        assert gate.buffer == []

    @pytest.mark.asyncio
    async def test_lock_released_when_turn_raises(self):
        gate = make_gate(AsyncMock(side_effect=RuntimeError("boom")))
        gate.buffer = [LOUD] * 3
        await gate.trigger()
        assert not gate.is_processing_turn


class TestMuting:
    @pytest.mark.asyncio
    async def test_frames_dropped_while_ai_speaks(self):
        gate = make_gate()
        gate.is_ai_speaking = True
        for _ in range(10):
            gate.ingest(LOUD)
        assert gate.buffer == []
        assert gate.frames_dropped == 10
        assert gate.frames_received == 10
        assert not gate.has_pending_timer


class TestClose:
    @pytest.mark.asyncio
    async def test_close_cancels_timer_and_ignores_frames(self):
        gate = make_gate(silence_timeout_ms=20)
        for _ in range(3):
            gate.ingest(LOUD)
        await gate.close()
        assert not gate.has_pending_timer
        gate.ingest(LOUD)
        assert gate.buffer == []
        await asyncio.sleep(0.05)
        gate.on_turn.assert_not_awaited()
