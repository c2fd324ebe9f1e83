"""Full-duplex voice session with the AI librarian.

Microphone frames arrive as 16-bit PCM and are appended to the provider's
input audio buffer as base64. Audio deltas coming back are decoded, stamped
with a gapless start time by :class:`PlaybackScheduler`, and handed to the
``on_audio`` callback.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from atmosphera.domain.repositories import ILiveSession
from atmosphera.infrastructure.media.audio import (
    AudioClip,
    PlaybackScheduler,
    ScheduledAudio,
    encode_frame,
)

logger = logging.getLogger(__name__)

AudioCallback = Callable[[ScheduledAudio], Awaitable[None]]
CloseCallback = Callable[[], Awaitable[None]]


class LiveSession(ILiveSession):
    """Wraps an open realtime connection.

    ``connection_manager`` is the async context manager returned by the SDK's
    ``connect()``; the session enters it in :meth:`start` and exits it in
    :meth:`close`.
    """

    def __init__(
        self,
        connection_manager: Any,
        on_audio: AudioCallback,
        on_close: CloseCallback,
        *,
        instructions: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._manager = connection_manager
        self._connection: Any = None
        self._on_audio = on_audio
        self._on_close = on_close
        self._instructions = instructions
        self._clock = clock
        self._epoch = clock()
        self.scheduler = PlaybackScheduler(now=0.0)
        self._receiver: Optional[asyncio.Task] = None
        self._closed = False
        self._close_lock = asyncio.Lock()

    def _now(self) -> float:
        return self._clock() - self._epoch

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> "LiveSession":
        self._connection = await self._manager.__aenter__()
        await self._connection.session.update(
            session={
                "modalities": ["audio", "text"],
                "instructions": self._instructions,
                "input_audio_format": "pcm16",
                "output_audio_format": "pcm16",
                "turn_detection": {"type": "server_vad"},
            }
        )
        self._receiver = asyncio.create_task(self._receive())
        logger.info("Live session opened")
        return self

    async def send_audio(self, pcm16: bytes) -> None:
        if self._closed or self._connection is None:
            return
        await self._connection.input_audio_buffer.append(audio=encode_frame(pcm16))

    async def _receive(self) -> None:
        try:
            async for event in self._connection:
                event_type = getattr(event, "type", "")
                if event_type in ("response.audio.delta", "response.output_audio.delta"):
                    clip = AudioClip.from_base64(event.delta)
                    await self._on_audio(self.scheduler.schedule(clip, self._now()))
                elif event_type == "input_audio_buffer.speech_started":
                    # user barged in; whatever is queued is stale
                    self.scheduler.reset(self._now())
                elif event_type == "error":
                    logger.warning("Live session provider error: %s", getattr(event, "error", event))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.error("Live session receive loop failed", exc_info=True)
        finally:
            if not self._closed:
                await self.close()

    async def close(self) -> None:
        async with self._close_lock:
            if self._closed:
                return
            self._closed = True

        receiver, self._receiver = self._receiver, None
        if receiver is not None and receiver is not asyncio.current_task():
            receiver.cancel()
            try:
                await receiver
            except asyncio.CancelledError:
                pass

        if self._connection is not None:
            try:
                await self._manager.__aexit__(None, None, None)
            except Exception:
                logger.warning("Error while closing live connection", exc_info=True)
            self._connection = None

        logger.info("Live session closed")
        await self._on_close()
