"""Media API routes (speech preview, mood imagery)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from atmosphera.api.schemas import AudioRequest, ImageResponse, MoodImageRequest
from atmosphera.core.dependencies import get_ai_service
from atmosphera.domain.repositories import IAIService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/media", tags=["media"])


@router.post("/audio", response_class=Response)
async def generate_audio_preview(
    body: AudioRequest,
    ai_service: Annotated[IAIService, Depends(get_ai_service)],
) -> Response:
    """Spoken preview as raw little-endian 16-bit PCM."""
    clip = await ai_service.generate_audio_preview(body.text)
    return Response(
        content=clip.pcm,
        media_type=f"audio/L16;rate={clip.sample_rate};channels={clip.channels}",
        headers={
            "X-Sample-Rate": str(clip.sample_rate),
            "X-Channels": str(clip.channels),
            "X-Duration": f"{clip.duration:.3f}",
        },
    )


@router.post("/mood-image", response_model=ImageResponse)
async def generate_mood_image(
    body: MoodImageRequest,
    ai_service: Annotated[IAIService, Depends(get_ai_service)],
) -> ImageResponse:
    """Generate a mood image, or edit ``image`` when one is supplied."""
    if body.image:
        image = await ai_service.edit_mood_image(body.image, body.prompt)
    else:
        image = await ai_service.generate_mood_image(body.prompt)
    return ImageResponse(image=image)
