"""Recommendation API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from atmosphera.api.schemas import BookSchema, PreferencesRequest, RecommendationResponse
from atmosphera.core.dependencies import get_library, get_recommendation_service
from atmosphera.services.library import LibraryOrchestrator
from atmosphera.services.recommendation import RecommendationService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["recommendations"])


@router.post("/recommendations", response_model=RecommendationResponse)
async def get_book_recommendations(
    body: PreferencesRequest,
    recommendation_service: Annotated[RecommendationService, Depends(get_recommendation_service)],
    library: Annotated[LibraryOrchestrator, Depends(get_library)],
) -> RecommendationResponse:
    """Curate books for a completed questionnaire.

    The answers go through the questionnaire's completion checks first; a
    missing answer is a 422. On success the library is nudged to refine its
    shelves around the new picks.
    """
    try:
        prefs = body.to_entity()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    result = await recommendation_service.get_book_recommendations(prefs)
    library.notify(prefs, result.books)

    return RecommendationResponse(
        heading=result.heading,
        insight=result.insight,
        anti_recommendation=result.anti_recommendation,
        confidence=result.confidence,
        books=[BookSchema.model_validate(b) for b in result.books],
    )
