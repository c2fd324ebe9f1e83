"""Book API routes (catalog search, trending, enrichment)."""

import logging
from typing import Annotated, Any, Literal, Optional

from fastapi import APIRouter, Depends, Query

from atmosphera.api.schemas import (
    BookListResponse,
    BookSchema,
    CoverResponse,
    InsightResponse,
    WebSourceSchema,
)
from atmosphera.core.dependencies import (
    get_ai_service,
    get_catalog,
    get_cover_resolver,
    get_recommendation_service,
)
from atmosphera.domain.repositories import IAIService, ICatalogService
from atmosphera.infrastructure.media.covers import CoverResolver
from atmosphera.services.recommendation import RecommendationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/books", tags=["books"])

DEFAULT_TRENDING_CONTEXT = "subject:fiction best_sellers"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@router.get("/search", response_model=BookListResponse)
async def search_books(
    catalog: Annotated[ICatalogService, Depends(get_catalog)],
    q: Annotated[str, Query(min_length=1)],
    language: Optional[str] = None,
) -> BookListResponse:
    """Search the catalog (up to 10 results)."""
    books = await catalog.search_books(q, language)
    return BookListResponse(
        books=[BookSchema.model_validate(b) for b in books], total=len(books)
    )


@router.get("/trending", response_model=BookListResponse)
async def get_trending_books(
    catalog: Annotated[ICatalogService, Depends(get_catalog)],
    recommendation_service: Annotated[RecommendationService, Depends(get_recommendation_service)],
    context: str = DEFAULT_TRENDING_CONTEXT,
    language: Optional[str] = None,
    source: Literal["catalog", "web"] = "catalog",
) -> BookListResponse:
    """Trending books; never empty.

    ``source=web`` asks the AI for titles trending in web search and resolves
    them through the catalog, falling back to catalog trending.
    """
    if source == "web":
        books = await recommendation_service.fetch_web_trending_books(language)
    else:
        books = await catalog.get_trending_books(context, language)
    return BookListResponse(
        books=[BookSchema.model_validate(b) for b in books], total=len(books)
    )


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------
@router.post("/insights", response_model=InsightResponse)
async def get_live_insights(
    body: BookSchema,
    ai_service: Annotated[IAIService, Depends(get_ai_service)],
) -> InsightResponse:
    """Web-grounded talk about the book with up to three sources."""
    insight = await ai_service.get_live_insights(body.to_entity())
    return InsightResponse(
        text=insight.text,
        sources=[WebSourceSchema.model_validate(s) for s in insight.sources],
    )


@router.post("/details")
async def get_enhanced_details(
    body: BookSchema,
    ai_service: Annotated[IAIService, Depends(get_ai_service)],
) -> dict[str, Any]:
    """Pairings, literary identity and other AI-written details."""
    return await ai_service.get_enhanced_details(body.to_entity())


@router.post("/cover", response_model=CoverResponse)
async def resolve_cover(
    body: BookSchema,
    covers: Annotated[CoverResolver, Depends(get_cover_resolver)],
) -> CoverResponse:
    """Best cover URL: Open Library by ISBN, else the catalog thumbnail."""
    return CoverResponse(cover_url=await covers.resolve(body.to_entity()))
