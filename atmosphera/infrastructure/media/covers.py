"""Best-effort cover art resolution."""

import logging
from typing import Optional

import httpx

from atmosphera.domain.entities import Book

logger = logging.getLogger(__name__)


class CoverResolver:
    """Prefers the Open Library cover for the book's ISBN, else the catalog thumbnail."""

    def __init__(self, client: httpx.AsyncClient, base_url: str = "https://covers.openlibrary.org"):
        self.client = client
        self.base_url = base_url.rstrip("/")

    def isbn_cover_url(self, isbn: str) -> str:
        return f"{self.base_url}/b/isbn/{isbn}-L.jpg"

    async def resolve(self, book: Book) -> Optional[str]:
        isbn = (book.isbn or "").replace("-", "").strip()
        if isbn:
            url = self.isbn_cover_url(isbn)
            try:
                resp = await self.client.head(url, params={"default": "false"}, follow_redirects=True)
                if resp.status_code == 200:
                    return url
                logger.debug("No cover for ISBN %s (HTTP %d)", isbn, resp.status_code)
            except httpx.HTTPError as exc:
                logger.warning("Cover lookup failed for ISBN %s: %s", isbn, exc)
        return book.cover_url

    async def enrich(self, book: Book) -> Book:
        book.cover_url = await self.resolve(book)
        return book
