"""Library orchestrator: background shelves, featured hero and refinement.

Initialization fans out every shelf source concurrently. A failing source
becomes an empty result and is skipped, so one outage never blanks the
library.

Refinement runs after a trailing debounce: every :meth:`notify` restarts the
timer, and only the last call inside the window does any work. At most one
refinement is in flight; a request arriving meanwhile is parked in a single
pending slot (newer requests replace it) and runs once the current one ends.

Each client has its own orchestrator, handed out by :class:`LibraryRegistry`.
"""

import asyncio
import logging
import random
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from atmosphera.domain.entities import (
    AtmosphericIntelligence,
    Book,
    PulseUpdate,
    Shelf,
    UserPreferences,
    identity_key,
)
from atmosphera.domain.repositories import IAIService, ICatalogService
from atmosphera.services.recommendation import RecommendationService

logger = logging.getLogger(__name__)

CATEGORIES: tuple[tuple[str, str], ...] = (
    ("Trending Now", "subject:fiction best_sellers 2025"),
    ("Atmospheric Reads", "subject:fiction moody atmospheric literary"),
    ("Dark Academia", "subject:fiction dark academia mystery secret history"),
    ("Cyberpunk & Sci-Fi", "subject:fiction cyberpunk sci-fi futurism dystopia"),
)
HERO_POOL_PER_SOURCE = 5
SYNC_ERROR = "Library synchronization intermittent."
DEFAULT_LANGUAGE = "English"
DISCOVERY_PREFIX = "Discovery: "
MAX_LIBRARIES = 256


class LibraryState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class RefineState(str, Enum):
    IDLE = "idle"
    DEBOUNCED = "debounced"
    REFINING = "refining"


@dataclass(frozen=True)
class RefinementRequest:
    prefs: UserPreferences
    recommendations: tuple[Book, ...]
    history: tuple[str, ...] = field(default_factory=tuple)


class LibraryOrchestrator:
    """In-memory library for one client.

    Catalog shelves are rebuilt on every initialization; discovery shelves are
    carried over.
    """

    def __init__(
        self,
        ai_service: IAIService,
        catalog: ICatalogService,
        recommendation_service: RecommendationService,
        *,
        debounce_seconds: float = 2.0,
        rng: Optional[random.Random] = None,
    ):
        self.ai_service = ai_service
        self.catalog = catalog
        self.recommendation_service = recommendation_service
        self.debounce_seconds = debounce_seconds
        self.rng = rng or random.Random()

        self.state = LibraryState.IDLE
        self.refine_state = RefineState.IDLE
        self.language: Optional[str] = None
        self.shelves: list[Shelf] = []
        self.featured_book: Optional[Book] = None
        self.pulses: list[PulseUpdate] = []
        self.recommendations: list[Book] = []
        self.intelligence: Optional[AtmosphericIntelligence] = None
        self.error: Optional[str] = None

        self._init_lock = asyncio.Lock()
        self._debounce_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._pending: Optional[RefinementRequest] = None

    # ------------------------------------------------------------------
    # Initial fan-out
    # ------------------------------------------------------------------

    async def _safe(self, label: str, coro: Awaitable[Any]) -> list:
        try:
            return list(await coro or [])
        except Exception as exc:
            logger.warning("Library source '%s' failed: %s", label, exc)
            return []

    async def initialize(self, language: str = DEFAULT_LANGUAGE) -> None:
        async with self._init_lock:
            await self._load(language)

    async def ensure_initialized(self, language: Optional[str] = None) -> None:
        """Initialize on first use, after a failure or when the language changes.

        Without a *language* the current one is kept.
        """
        async with self._init_lock:
            language = language or self.language or DEFAULT_LANGUAGE
            if self.state in (LibraryState.IDLE, LibraryState.FAILED) or language != self.language:
                await self._load(language)

    async def _load(self, language: str) -> None:
        self.state = LibraryState.LOADING
        self.error = None
        self.language = language
        logger.info("Initializing library (%s)", language)

        pulses, trending, gems, *categories = await asyncio.gather(
            self._safe("pulse", self.catalog.fetch_literary_pulse(language)),
            self._safe(
                "web trending", self.recommendation_service.fetch_web_trending_books(language)
            ),
            self._safe("hidden gems", self.catalog.fetch_hidden_gems(language)),
            *(
                self._safe(name, self.catalog.get_trending_books(query, language))
                for name, query in CATEGORIES
            ),
        )

        hero_pool = trending[:HERO_POOL_PER_SOURCE] + gems[:HERO_POOL_PER_SOURCE]
        self.featured_book = self.rng.choice(hero_pool) if hero_pool else None

        shelves: list[Shelf] = []
        if trending:
            shelves.append(Shelf(title="Global Sensations", books=trending, is_live=True))
        if gems:
            shelves.append(Shelf(title="Hidden Gems", books=gems, is_live=True))
        for (name, _), books in zip(CATEGORIES, categories):
            if books:
                shelves.append(Shelf(title=name, books=books, is_live=True))

        # discovery shelves survive a reload, including ones injected mid-fetch
        discoveries = [s for s in self.shelves if s.title.startswith(DISCOVERY_PREFIX)]
        self.pulses = pulses
        self.shelves = discoveries + shelves
        if shelves:
            self.state = LibraryState.READY
        else:
            self.state = LibraryState.FAILED
            self.error = SYNC_ERROR
        logger.info(
            "Library %s: %d shelves, %d pulses", self.state.value, len(self.shelves), len(pulses)
        )

    # ------------------------------------------------------------------
    # Refinement
    # ------------------------------------------------------------------

    def notify(
        self,
        prefs: Optional[UserPreferences],
        recommendations: Sequence[Book],
        history: Sequence[str] = (),
    ) -> None:
        """Restart the debounce timer for a refinement with the latest state."""
        self.recommendations = list(recommendations)
        if prefs is None or not recommendations:
            return
        request = RefinementRequest(
            prefs=prefs, recommendations=tuple(recommendations), history=tuple(history)
        )
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        if self.refine_state == RefineState.IDLE:
            self.refine_state = RefineState.DEBOUNCED
        self._debounce_task = asyncio.create_task(self._debounced(request))

    async def _debounced(self, request: RefinementRequest) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._submit(request)

    def _submit(self, request: RefinementRequest) -> None:
        if self._inflight is not None and not self._inflight.done():
            if self._pending is not None:
                logger.debug("Replacing pending refinement request")
            self._pending = request
            return
        self._inflight = asyncio.create_task(self._run(request))

    async def _run(self, request: RefinementRequest) -> None:
        current: Optional[RefinementRequest] = request
        while current is not None:
            self.refine_state = RefineState.REFINING
            try:
                await self._refine(current)
            except Exception as exc:
                logger.debug("Refinement skipped: %s", exc)
            current, self._pending = self._pending, None
        waiting = self._debounce_task is not None and not self._debounce_task.done()
        self.refine_state = RefineState.DEBOUNCED if waiting else RefineState.IDLE

    async def _refine(self, request: RefinementRequest) -> None:
        await self.ensure_initialized(request.prefs.language)
        intel = await self.ai_service.get_atmospheric_intelligence(
            request.prefs,
            request.history,
            request.recommendations,
            [s.title for s in self.shelves],
        )
        self.intelligence = intel
        query = intel.additional_discovery_query
        if not query:
            return
        books = await self.catalog.search_books(query, request.prefs.language)
        if not books:
            return
        title = f"{DISCOVERY_PREFIX}{query}"
        self.shelves = [Shelf(title=title, books=books, is_live=True)] + [
            s for s in self.shelves if s.title != title
        ]
        logger.info("Injected discovery shelf %r (%d books)", title, len(books))

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or refinement is outstanding."""
        while True:
            tasks = [t for t in (self._debounce_task, self._inflight) if t and not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def cancel(self) -> None:
        """Cancel any debounce timer or refinement without waiting for it."""
        for task in (self._debounce_task, self._inflight):
            if task is not None and not task.done():
                task.cancel()
        self._pending = None

    async def aclose(self) -> None:
        self.cancel()
        await asyncio.gather(
            *(t for t in (self._debounce_task, self._inflight) if t is not None),
            return_exceptions=True,
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def displayed_shelves(self, wishlist: Sequence[Book] = ()) -> list[Shelf]:
        """Shelves with books already shown elsewhere removed, empty shelves dropped.

        Recommendations, wishlist and the featured book claim their titles
        first; after that each book appears on the first shelf that has it.
        """
        seen: set[str] = set()
        for book in (*self.recommendations, *wishlist):
            seen.add(identity_key(book.title, book.author))
        if self.featured_book is not None:
            seen.add(self.featured_book.identity)

        result = []
        for shelf in self.shelves:
            unique = []
            for book in shelf.books:
                if book.identity in seen:
                    continue
                seen.add(book.identity)
                unique.append(book)
            if unique:
                result.append(Shelf(title=shelf.title, books=unique, is_live=shelf.is_live))
        return result


class LibraryRegistry:
    """One orchestrator per client id; the least recently used is evicted."""

    def __init__(
        self,
        factory: Callable[[], LibraryOrchestrator],
        max_libraries: int = MAX_LIBRARIES,
    ):
        self.factory = factory
        self.max_libraries = max_libraries
        self._libraries: "OrderedDict[str, LibraryOrchestrator]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._libraries)

    def get(self, client_id: str) -> LibraryOrchestrator:
        library = self._libraries.get(client_id)
        if library is None:
            library = self.factory()
            self._libraries[client_id] = library
            while len(self._libraries) > self.max_libraries:
                evicted, old = self._libraries.popitem(last=False)
                old.cancel()
                logger.info("Evicted library for client %s", evicted)
        else:
            self._libraries.move_to_end(client_id)
        return library

    async def aclose(self) -> None:
        libraries = list(self._libraries.values())
        self._libraries.clear()
        await asyncio.gather(*(library.aclose() for library in libraries))
