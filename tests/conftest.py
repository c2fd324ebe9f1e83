"""
Pytest configuration and fixtures.
"""

import json
import random
from typing import Callable, Optional, Sequence

import httpx
import pytest
from fastapi.testclient import TestClient

from atmosphera.core.config import Settings
from atmosphera.core.dependencies import build_resources
from atmosphera.domain.entities import (
    AtmosphericIntelligence,
    Book,
    MoodType,
    PulseUpdate,
    ReadingPace,
    RecommendationResult,
    UserPreferences,
    WeatherType,
    WorldSetting,
)
from atmosphera.domain.repositories import ICatalogService
from atmosphera.infrastructure.llm.services import MockAIService
from atmosphera.infrastructure.store.memory import MemoryKeyValueStore
from atmosphera.main import create_app
from atmosphera.services.session_store import SessionStore

GHOST_BOOKS = [
    ("The Haunting of Hill House", "Shirley Jackson", "Gothic Horror"),
    ("Lincoln in the Bardo", "George Saunders", "Literary Fiction"),
    ("The Little Stranger", "Sarah Waters", "Historical Mystery"),
    ("Beloved", "Toni Morrison", "Magical Realism"),
]


def make_book(title: str = "Dune", author: str = "Frank Herbert", **extra) -> Book:
    return Book(title=title, author=author, **extra)


def volume(title: str, author: str = "Someone", **info) -> dict:
    """A Google Books ``volumes`` item."""
    return {"volumeInfo": {"title": title, "authors": [author], **info}}


def json_transport(handler: Callable[[httpx.Request], object]) -> httpx.MockTransport:
    """MockTransport whose handler returns a JSON-able body (or an httpx.Response)."""

    def respond(request: httpx.Request) -> httpx.Response:
        result = handler(request)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, content=json.dumps(result).encode())

    return httpx.MockTransport(respond)


class StubAIService(MockAIService):
    """Mock provider with scripted recommendation and refinement answers."""

    def __init__(
        self,
        books: Sequence[tuple[str, str, str]] = GHOST_BOOKS,
        discovery_query: Optional[str] = None,
    ):
        super().__init__(recommendation_count=len(books))
        self.books = list(books)
        self.discovery_query = discovery_query
        self.recommendation_calls: list[UserPreferences] = []
        self.intelligence_calls: list[tuple] = []

    async def get_book_recommendations(self, prefs: UserPreferences) -> RecommendationResult:
        self.recommendation_calls.append(prefs)
        return RecommendationResult(
            heading="Rain on the Window",
            insight="Ghosts keep company on grey days.",
            books=[
                Book(title=t, author=a, genre=g, description="", mood_color="#334455").ensure_id()
                for t, a, g in self.books
            ],
        )

    async def get_atmospheric_intelligence(self, prefs, history, recommendations, shelf_titles):
        self.intelligence_calls.append((prefs, tuple(history), tuple(recommendations), tuple(shelf_titles)))
        return AtmosphericIntelligence(
            insight="Quiet hauntings.", additional_discovery_query=self.discovery_query
        )


class FakeCatalog(ICatalogService):
    """In-memory catalog; any source named in ``failing`` raises."""

    def __init__(self, failing: Sequence[str] = (), books: Optional[list[Book]] = None):
        self.failing = set(failing)
        self.books = books if books is not None else [
            make_book(f"Book {i}", f"Author {i}") for i in range(6)
        ]
        self.searches: list[str] = []

    def _check(self, source: str) -> None:
        if source in self.failing:
            raise RuntimeError(f"{source} is down")

    async def search_books(self, query, language=None):
        self._check("search")
        self.searches.append(query)
        return [make_book(f"{query} #{i}", "Finder") for i in range(3)]

    async def get_trending_books(self, context=None, language=None):
        self._check("trending")
        return [make_book(f"{context} {b.title}", b.author) for b in self.books]

    async def fetch_hidden_gems(self, language=None):
        self._check("gems")
        return [make_book(f"Gem {i}", "Quiet Author") for i in range(4)]

    async def fetch_literary_pulse(self, language=None):
        self._check("pulse")
        return [PulseUpdate(type="New Release", title="Fresh by Ink", snippet="New.")]


@pytest.fixture
def rainy_prefs() -> UserPreferences:
    return UserPreferences(
        weather=WeatherType.RAINY,
        mood=MoodType.CONTEMPLATIVE,
        pace=ReadingPace.SLOW,
        setting=WorldSetting.GOTHIC,
        specific_interest="ghosts",
    )


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore(MemoryKeyValueStore(), namespace="test")


@pytest.fixture
def catalog_handler():
    """Default Google Books / Open Library / Open-Meteo responder for API tests."""

    def handler(request: httpx.Request):
        host = request.url.host
        if host == "covers.openlibrary.org":
            return httpx.Response(404)
        if host == "api.open-meteo.com":
            return {"current": {"temperature_2m": 11.5, "is_day": 1, "weather_code": 61}}
        if host == "api.bigdatacloud.net":
            return {"locality": "Edinburgh"}
        q = request.url.params.get("q", "")
        return {"items": [volume(f"{q} result {i}", f"Writer {i}") for i in range(3)]}

    return handler


@pytest.fixture
def stub_ai() -> StubAIService:
    return StubAIService()


@pytest.fixture
def client(stub_ai, catalog_handler):
    """TestClient over the real app with offline HTTP and the stub AI."""
    config = Settings(refine_debounce_seconds=0.01, store_backend="memory")

    def factory():
        return build_resources(
            config,
            http=httpx.AsyncClient(transport=json_transport(catalog_handler)),
            ai_service=stub_ai,
        )

    app = create_app(factory)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
