import asyncio
import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock

import numpy as np
import pytest

from atmosphera.infrastructure.llm.live import LiveSession
from atmosphera.infrastructure.llm.services import MockAIService
from atmosphera.infrastructure.media.audio import (
    OUTPUT_SAMPLE_RATE,
    AudioClip,
    PlaybackScheduler,
    encode_pcm16,
)


def clip_of(seconds: float) -> AudioClip:
    return AudioClip(pcm=b"\x00\x00" * int(seconds * OUTPUT_SAMPLE_RATE))


def delta(seconds: float):
    pcm = b"\x01\x00" * int(seconds * OUTPUT_SAMPLE_RATE)
    return SimpleNamespace(type="response.audio.delta", delta=base64.b64encode(pcm).decode())


class FakeConnection:
    def __init__(self):
        self.events: asyncio.Queue = asyncio.Queue()
        self.session = SimpleNamespace(update=AsyncMock())
        self.input_audio_buffer = SimpleNamespace(append=AsyncMock())

    def __aiter__(self):
        return self

    async def __anext__(self):
        event = await self.events.get()
        if event is None:
            raise StopAsyncIteration
        if isinstance(event, Exception):
            raise event
        return event


class FakeManager:
    def __init__(self):
        self.connection = FakeConnection()
        self.entered = 0
        self.exited = 0

    async def __aenter__(self):
        self.entered += 1
        return self.connection

    async def __aexit__(self, *exc_info):
        self.exited += 1


class Recorder:
    def __init__(self):
        self.audio: asyncio.Queue = asyncio.Queue()
        self.closed = 0

    async def on_audio(self, scheduled):
        await self.audio.put(scheduled)

    async def on_close(self):
        self.closed += 1


async def open_session(clock=lambda: 0.0):
    manager, recorder = FakeManager(), Recorder()
    session = LiveSession(
        manager, recorder.on_audio, recorder.on_close, instructions="Be a librarian.", clock=clock
    )
    await session.start()
    return session, manager, recorder


class TestAudioClip:
    def test_float_conversion_range(self):
        pcm = np.array([-32768, 0, 16384, 32767], dtype="<i2").tobytes()
        samples = AudioClip(pcm=pcm).to_float32()

        assert samples.shape == (4, 1)
        assert samples.min() >= -1.0 and samples.max() < 1.0
        assert samples[0, 0] == -1.0 and samples[2, 0] == 0.5

    def test_duration(self):
        assert clip_of(0.5).duration == pytest.approx(0.5)

    def test_encode_pcm16_clips(self):
        pcm = encode_pcm16(np.array([2.0, -2.0, 0.0]))
        assert np.frombuffer(pcm, dtype="<i2").tolist() == [32767, -32767, 0]


class TestPlaybackScheduler:
    def test_back_to_back_chunks_are_gapless(self):
        scheduler = PlaybackScheduler(now=0.0)
        clips = [clip_of(0.2), clip_of(0.3), clip_of(0.1)]

        slots = [scheduler.schedule(c, now=0.05 * i) for i, c in enumerate(clips)]

        assert slots[0].start == 0.0
        for previous, current in zip(slots, slots[1:]):
            assert current.start == pytest.approx(previous.end)

    def test_late_chunk_starts_now(self):
        scheduler = PlaybackScheduler()
        scheduler.schedule(clip_of(0.1), now=0.0)
        slot = scheduler.schedule(clip_of(0.1), now=5.0)
        assert slot.start == 5.0

    def test_reset_drops_queue(self):
        scheduler = PlaybackScheduler()
        scheduler.schedule(clip_of(10), now=0.0)
        scheduler.reset(now=1.0)
        assert scheduler.schedule(clip_of(0.1), now=1.0).start == 1.0


class TestLiveSession:
    async def test_configures_session_and_forwards_frames(self):
        session, manager, _ = await open_session()

        await session.send_audio(b"\x01\x02")

        manager.connection.session.update.assert_awaited_once()
        config = manager.connection.session.update.call_args.kwargs["session"]
        assert config["input_audio_format"] == "pcm16"
        assert config["instructions"] == "Be a librarian."
        manager.connection.input_audio_buffer.append.assert_awaited_once_with(
            audio=base64.b64encode(b"\x01\x02").decode()
        )
        await session.close()

    async def test_audio_deltas_are_scheduled_gaplessly(self):
        session, manager, recorder = await open_session()

        await manager.connection.events.put(delta(0.1))
        await manager.connection.events.put(delta(0.2))
        first = await asyncio.wait_for(recorder.audio.get(), 1)
        second = await asyncio.wait_for(recorder.audio.get(), 1)

        assert first.start == 0.0
        assert second.start == pytest.approx(first.end)
        await session.close()

    async def test_speech_started_resets_playback(self):
        now = [0.0]
        session, manager, recorder = await open_session(clock=lambda: now[0])

        await manager.connection.events.put(delta(5.0))
        await asyncio.wait_for(recorder.audio.get(), 1)
        now[0] = 1.0
        await manager.connection.events.put(SimpleNamespace(type="input_audio_buffer.speech_started"))
        await manager.connection.events.put(delta(0.1))
        after = await asyncio.wait_for(recorder.audio.get(), 1)

        assert after.start == pytest.approx(1.0)
        await session.close()

    async def test_close_is_idempotent(self):
        session, manager, recorder = await open_session()

        await asyncio.gather(session.close(), session.close())
        await session.close()

        assert recorder.closed == 1
        assert manager.exited == 1
        assert session.closed

    async def test_send_after_close_is_ignored(self):
        session, manager, _ = await open_session()
        await session.close()
        await session.send_audio(b"\x00\x00")
        manager.connection.input_audio_buffer.append.assert_not_awaited()

    @pytest.mark.parametrize("last_event", [None, RuntimeError("socket reset")])
    async def test_receive_loop_closes_session_before_it_exits(self, last_event):
        session, manager, recorder = await open_session()
        receiver = session._receiver

        await manager.connection.events.put(last_event)
        await receiver

        assert session.closed
        assert recorder.closed == 1
        assert manager.exited == 1


class TestMockProvider:
    async def test_speech_preview_is_pcm16(self):
        clip = await MockAIService().generate_audio_preview("a quiet rainy evening")
        assert clip.sample_rate == 24000 and clip.channels == 1
        assert clip.duration == pytest.approx(0.4)
        assert np.abs(clip.to_float32()).max() <= 0.11

    async def test_mock_live_echo_and_close(self):
        recorder = Recorder()
        session = await MockAIService().connect_live_session(recorder.on_audio, recorder.on_close)

        await session.send_audio(b"\x00\x00" * 2400)
        await session.send_audio(b"\x00\x00" * 2400)
        first, second = recorder.audio.get_nowait(), recorder.audio.get_nowait()
        assert second.start == pytest.approx(first.end)

        await session.close()
        await session.close()
        assert recorder.closed == 1
