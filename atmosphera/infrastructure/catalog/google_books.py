"""Google Books catalog client.

Unauthenticated ``GET /volumes`` queries mapped into :class:`Book` records.
"""

import logging
import random
from typing import Any, Optional

import httpx

from atmosphera.domain.entities import Book, Price, PulseUpdate
from atmosphera.domain.repositories import ICatalogService
from atmosphera.infrastructure.catalog.fallback import fallback_books
from atmosphera.infrastructure.catalog.palette import mood_color_for
from atmosphera.infrastructure.llm.parsing import sanitize_input, truncate_description

logger = logging.getLogger(__name__)

MAX_RESULTS = 10
MAX_START_INDEX = 500

LANGUAGE_CODES = {
    "english": "en",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "italian": "it",
    "portuguese": "pt",
    "hindi": "hi",
    "japanese": "ja",
    "chinese": "zh",
    "russian": "ru",
    "arabic": "ar",
}

HIDDEN_GEM_QUERIES = (
    "subject:fiction literary debut overlooked",
    "subject:fiction translated literature small press",
    "subject:fiction cult classic underrated",
    "subject:fiction quiet novel award shortlist",
)


def language_code(language: Optional[str]) -> Optional[str]:
    if not language:
        return None
    key = language.strip().lower()
    if len(key) == 2 and key.isalpha():
        return key
    return LANGUAGE_CODES.get(key)


def map_volume(item: dict[str, Any]) -> Book:
    """Map a Google Books ``volume`` resource into a :class:`Book`."""
    info = item.get("volumeInfo") or {}
    sale = item.get("saleInfo") or {}
    access = item.get("accessInfo") or {}

    title = info.get("title") or "Untitled"
    description = info.get("description") or ""
    identifiers = info.get("industryIdentifiers") or []
    thumbnail = (info.get("imageLinks") or {}).get("thumbnail")

    price = None
    retail = sale.get("retailPrice") or sale.get("listPrice")
    if retail and "amount" in retail:
        price = Price(amount=float(retail["amount"]), currency_code=retail.get("currencyCode", ""))

    book = Book(
        title=title,
        author=", ".join(info.get("authors") or []) or "Unknown",
        isbn=identifiers[0].get("identifier") if identifiers else None,
        genre=(info.get("categories") or ["General"])[0],
        description=truncate_description(description),
        excerpt=description[:100],
        mood_color=mood_color_for(title),
        language=info.get("language"),
        atmospheric_role="Immersive",
        cognitive_effort="Moderate",
        cover_url=thumbnail.replace("http:", "https:") if thumbnail else None,
        publisher=info.get("publisher"),
        published_date=info.get("publishedDate"),
        page_count=info.get("pageCount"),
        average_rating=info.get("averageRating"),
        ratings_count=info.get("ratingsCount"),
        saleability=sale.get("saleability"),
        price=price,
        buy_link=sale.get("buyLink"),
        access_view_status=access.get("accessViewStatus"),
        pdf_available=(access.get("pdf") or {}).get("isAvailable"),
        epub_available=(access.get("epub") or {}).get("isAvailable"),
        ebook_url=access.get("webReaderLink"),
    )
    return book.ensure_id()


class GoogleBooksCatalog(ICatalogService):
    """Catalog backed by the public Google Books API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = "https://www.googleapis.com/books/v1",
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.rng = rng or random.Random()

    async def _volumes(
        self,
        query: str,
        language: Optional[str] = None,
        *,
        start_index: int = 0,
        order_by: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "q": query,
            "maxResults": MAX_RESULTS,
            "printType": "books",
            "startIndex": start_index,
        }
        code = language_code(language)
        if code:
            params["langRestrict"] = code
        if order_by:
            params["orderBy"] = order_by
        resp = await self.client.get(f"{self.base_url}/volumes", params=params)
        resp.raise_for_status()
        return resp.json().get("items") or []

    async def search_books(self, query: str, language: Optional[str] = None) -> list[Book]:
        query = sanitize_input(query).strip()
        if not query:
            return []
        try:
            items = await self._volumes(query, language)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Catalog search failed for %r: %s", query, exc)
            return []
        return [map_volume(item) for item in items]

    async def get_trending_books(
        self, context: Optional[str] = None, language: Optional[str] = None
    ) -> list[Book]:
        query = context or "subject:fiction"
        offset = self.rng.randint(0, MAX_START_INDEX)
        try:
            items = await self._volumes(query, language, start_index=offset)
            if not items and offset:
                logger.info("Trending page at offset %d empty for %r; retrying at 0", offset, query)
                items = await self._volumes(query, language, start_index=0)
        except Exception as exc:
            logger.warning("Trending fetch failed for %r (%s); serving fallback shelf", query, exc)
            return fallback_books(self.rng)
        if not items:
            logger.warning("Trending fetch for %r returned nothing; serving fallback shelf", query)
            return fallback_books(self.rng)
        return [map_volume(item) for item in items]

    async def fetch_hidden_gems(self, language: Optional[str] = None) -> list[Book]:
        query = self.rng.choice(HIDDEN_GEM_QUERIES)
        offset = self.rng.randint(0, 40)
        try:
            items = await self._volumes(query, language, start_index=offset)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Hidden gems fetch failed: %s", exc)
            return []
        books = [map_volume(item) for item in items]
        for book in books:
            book.atmospheric_role = "Hidden Gem"
            book.reasoning = book.reasoning or "Under-read and worth the detour."
        return books

    async def fetch_literary_pulse(self, language: Optional[str] = None) -> list[PulseUpdate]:
        try:
            items = await self._volumes("subject:fiction", language, order_by="newest")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Literary pulse fetch failed: %s", exc)
            return []
        pulses = []
        for item in items[:6]:
            info = item.get("volumeInfo") or {}
            authors = ", ".join(info.get("authors") or []) or "Unknown"
            pulses.append(
                PulseUpdate(
                    type="New Release",
                    title=f"{info.get('title') or 'Untitled'} by {authors}",
                    snippet=truncate_description(info.get("description"), limit=160),
                    url=info.get("infoLink") or info.get("canonicalVolumeLink"),
                )
            )
        return pulses
