"""Recommendation and discovery service.

Blends the AI curator with the books catalog:

  1. AI recommendations for the questionnaire answers, enriched with catalog
     metadata and cover art.
  2. Web-grounded trending titles resolved through the catalog.
"""

import asyncio
import logging
from typing import Optional

from atmosphera.domain.entities import Book, RecommendationResult, UserPreferences
from atmosphera.domain.repositories import IAIService, ICatalogService
from atmosphera.infrastructure.llm.errors import AIServiceError
from atmosphera.infrastructure.media.covers import CoverResolver

logger = logging.getLogger(__name__)

CATALOG_FIELDS = (
    "cover_url",
    "publisher",
    "published_date",
    "page_count",
    "average_rating",
    "ratings_count",
    "saleability",
    "price",
    "buy_link",
    "access_view_status",
    "pdf_available",
    "epub_available",
)
TRENDING_FALLBACK_QUERY = "bestselling fiction 2024"
MAX_TRENDING = 6


def merge_catalog_fields(book: Book, match: Book) -> Book:
    """Fill catalog-sourced fields of *book* from *match* without touching AI fields."""
    for name in CATALOG_FIELDS:
        if getattr(book, name) is None:
            setattr(book, name, getattr(match, name))
    if not book.isbn and match.isbn:
        book.isbn = match.isbn
    return book


class RecommendationService:

    def __init__(
        self,
        ai_service: IAIService,
        catalog: ICatalogService,
        covers: Optional[CoverResolver] = None,
    ):
        self.ai_service = ai_service
        self.catalog = catalog
        self.covers = covers

    async def _enrich(self, book: Book, language: Optional[str]) -> Book:
        try:
            matches = await self.catalog.search_books(
                f'intitle:"{book.title}" inauthor:"{book.author}"', language
            )
            if matches:
                merge_catalog_fields(book, matches[0])
            if self.covers is not None:
                await self.covers.enrich(book)
        except Exception as exc:
            logger.warning("Enrichment failed for '%s': %s", book.title, exc)
        return book

    async def get_book_recommendations(self, prefs: UserPreferences) -> RecommendationResult:
        """Curate books for *prefs*. AI errors propagate to the caller unchanged."""
        result = await self.ai_service.get_book_recommendations(prefs)
        await asyncio.gather(*(self._enrich(b, prefs.language) for b in result.books))
        logger.info(
            "Curated %d books: %s",
            len(result.books),
            ", ".join(f"{b.title} [{b.genre}]" for b in result.books),
        )
        return result

    async def fetch_web_trending_books(self, language: Optional[str] = None) -> list[Book]:
        try:
            lines = await self.ai_service.fetch_trending_titles(language)
        except AIServiceError as exc:
            logger.warning("Web trending search failed (%s); using catalog trending", exc.kind)
            return await self.catalog.get_trending_books(TRENDING_FALLBACK_QUERY, language)

        books: list[Book] = []
        for line in lines[:MAX_TRENDING]:
            results = await self.catalog.search_books(line, language)
            if not results:
                logger.debug("No catalog match for trending line %r", line)
                continue
            book = results[0]
            book.atmospheric_role = "Global Sensation"
            book.reasoning = "Trending globally in search data."
            books.append(book)
        if not books:
            return await self.catalog.get_trending_books(TRENDING_FALLBACK_QUERY, language)
        return books
