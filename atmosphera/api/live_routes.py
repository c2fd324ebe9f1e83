"""Live voice relay.

Clients send ``{"audio": <base64 pcm16>}`` frames; the server answers with
``{"audio", "start", "duration"}`` frames whose ``start`` times (seconds from
session open) line up back to back for gapless playback.
"""

import asyncio
import base64
import binascii
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from atmosphera.core.dependencies import get_ai_service
from atmosphera.domain.repositories import IAIService
from atmosphera.infrastructure.llm.errors import AIServiceError
from atmosphera.infrastructure.media.audio import ScheduledAudio, encode_frame

logger = logging.getLogger(__name__)
router = APIRouter(tags=["live"])


@router.websocket("/live")
async def live_session(
    websocket: WebSocket,
    ai_service: Annotated[IAIService, Depends(get_ai_service)],
) -> None:
    """Relay microphone frames to the live provider and stream its voice back."""
    await websocket.accept()
    closed = asyncio.Event()

    async def on_audio(scheduled: ScheduledAudio) -> None:
        await websocket.send_json(
            {
                "audio": encode_frame(scheduled.clip.pcm),
                "start": scheduled.start,
                "duration": scheduled.clip.duration,
            }
        )

    async def on_close() -> None:
        closed.set()

    try:
        session = await ai_service.connect_live_session(on_audio, on_close)
    except AIServiceError as exc:
        await websocket.send_json({"error": exc.kind, "detail": exc.user_message})
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        while not closed.is_set():
            try:
                message = await websocket.receive_json()
            except ValueError:
                logger.warning("Dropping non-JSON live frame")
                continue
            frame = message.get("audio") if isinstance(message, dict) else None
            if not frame:
                continue
            try:
                pcm = base64.b64decode(frame, validate=True)
            except (binascii.Error, ValueError):
                logger.warning("Dropping malformed live audio frame")
                continue
            await session.send_audio(pcm)
    except WebSocketDisconnect:
        logger.info("Live client disconnected")
    finally:
        await session.close()
