import asyncio
import random

from atmosphera.domain.entities import AtmosphericIntelligence, Shelf
from atmosphera.services.library import (
    CATEGORIES,
    SYNC_ERROR,
    LibraryOrchestrator,
    LibraryRegistry,
    LibraryState,
    RefineState,
)
from atmosphera.services.recommendation import RecommendationService

from conftest import FakeCatalog, StubAIService, make_book


def orchestrator(ai=None, catalog=None, debounce=0.01) -> LibraryOrchestrator:
    ai = ai or StubAIService(discovery_query="gothic ghosts")
    catalog = catalog or FakeCatalog()
    return LibraryOrchestrator(
        ai,
        catalog,
        RecommendationService(ai, catalog),
        debounce_seconds=debounce,
        rng=random.Random(5),
    )


class TestInitialize:
    async def test_shelf_order_and_featured_book(self):
        library = orchestrator()
        await library.initialize("English")

        titles = [s.title for s in library.shelves]
        assert titles == ["Global Sensations", "Hidden Gems"] + [name for name, _ in CATEGORIES]
        assert library.state is LibraryState.READY
        assert library.error is None
        assert library.pulses and library.pulses[0].type == "New Release"

        pool = library.shelves[0].books[:5] + library.shelves[1].books[:5]
        assert library.featured_book in pool

    async def test_partial_failure_skips_shelves(self):
        library = orchestrator(catalog=FakeCatalog(failing=["gems", "pulse"]))
        await library.initialize()

        titles = [s.title for s in library.shelves]
        assert "Hidden Gems" not in titles
        assert library.pulses == []
        assert library.state is LibraryState.READY
        assert library.error is None

    async def test_total_failure_sets_blocking_error(self):
        catalog = FakeCatalog(failing=["search", "trending", "gems", "pulse"])
        library = orchestrator(catalog=catalog)
        await library.initialize()

        assert library.shelves == []
        assert library.featured_book is None
        assert library.state is LibraryState.FAILED
        assert library.error == SYNC_ERROR

    async def test_ensure_initialized_reloads_on_language_change(self):
        library = orchestrator()
        await library.ensure_initialized("English")
        first = library.shelves
        await library.ensure_initialized("English")
        assert library.shelves is first
        await library.ensure_initialized("Spanish")
        assert library.language == "Spanish"
        spanish = library.shelves
        await library.ensure_initialized()
        assert library.shelves is spanish

    async def test_concurrent_first_use_initializes_once(self):
        calls = []

        class CountingCatalog(FakeCatalog):
            async def fetch_literary_pulse(self, language=None):
                calls.append(language)
                return await super().fetch_literary_pulse(language)

        library = orchestrator(catalog=CountingCatalog())
        await asyncio.gather(*(library.ensure_initialized() for _ in range(3)))
        assert calls == ["English"]


class TestRefinement:
    async def test_debounced_notify_runs_once_and_prepends_discovery(self, rainy_prefs):
        ai = StubAIService(discovery_query="gothic ghosts")
        library = orchestrator(ai=ai, debounce=0.05)
        await library.initialize()
        recs = [make_book("Rebecca", "Daphne du Maurier")]

        for _ in range(5):
            library.notify(rainy_prefs, recs)
        assert library.refine_state is RefineState.DEBOUNCED
        await library.wait_idle()

        assert len(ai.intelligence_calls) == 1
        assert library.shelves[0].title == "Discovery: gothic ghosts"
        assert library.intelligence.insight == "Quiet hauntings."
        assert library.refine_state is RefineState.IDLE

    async def test_refinement_before_first_use_initializes_library(self, rainy_prefs):
        ai = StubAIService(discovery_query="ghost stories")
        library = orchestrator(ai=ai)

        library.notify(rainy_prefs, [make_book("Rebecca", "Daphne du Maurier")])
        await library.wait_idle()

        assert library.state is LibraryState.READY
        assert "Global Sensations" in ai.intelligence_calls[0][3]
        assert library.shelves[0].title == "Discovery: ghost stories"

        await library.initialize()
        assert library.shelves[0].title == "Discovery: ghost stories"

    async def test_discovery_shelf_survives_reload(self, rainy_prefs):
        library = orchestrator(ai=StubAIService(discovery_query="gothic ghosts"))
        await library.initialize()
        library.notify(rainy_prefs, [make_book()])
        await library.wait_idle()

        await library.ensure_initialized("Spanish")

        titles = [s.title for s in library.shelves]
        assert titles[0] == "Discovery: gothic ghosts"
        assert titles[1:] == ["Global Sensations", "Hidden Gems"] + [name for name, _ in CATEGORIES]

    async def test_no_query_no_shelf(self, rainy_prefs):
        library = orchestrator(ai=StubAIService(discovery_query=None))
        await library.initialize()
        before = [s.title for s in library.shelves]

        library.notify(rainy_prefs, [make_book()])
        await library.wait_idle()

        assert [s.title for s in library.shelves] == before

    async def test_notify_needs_preferences_and_recommendations(self, rainy_prefs):
        ai = StubAIService(discovery_query="x")
        library = orchestrator(ai=ai)
        library.notify(None, [make_book()])
        library.notify(rainy_prefs, [])
        await library.wait_idle()
        assert ai.intelligence_calls == []

    async def test_single_pending_slot(self, rainy_prefs):
        gate = asyncio.Event()

        class SlowAI(StubAIService):
            async def get_atmospheric_intelligence(self, prefs, history, recommendations, shelf_titles):
                self.intelligence_calls.append(tuple(history))
                await gate.wait()
                return AtmosphericIntelligence(insight="done")

        ai = SlowAI()
        library = orchestrator(ai=ai, debounce=0)
        await library.initialize()

        library.notify(rainy_prefs, [make_book()], ["first"])
        while not ai.intelligence_calls:
            await asyncio.sleep(0)
        assert library.refine_state is RefineState.REFINING

        library.notify(rainy_prefs, [make_book()], ["second"])
        await asyncio.sleep(0.01)
        library.notify(rainy_prefs, [make_book()], ["third"])
        await asyncio.sleep(0.01)
        assert len(ai.intelligence_calls) == 1

        gate.set()
        await library.wait_idle()

        assert ai.intelligence_calls == [("first",), ("third",)]

    async def test_refinement_failure_is_swallowed(self, rainy_prefs):
        class BrokenAI(StubAIService):
            async def get_atmospheric_intelligence(self, *args):
                raise RuntimeError("model hiccup")

        library = orchestrator(ai=BrokenAI())
        await library.initialize()
        library.notify(rainy_prefs, [make_book()])
        await library.wait_idle()
        assert library.refine_state is RefineState.IDLE
        assert library.state is LibraryState.READY

    async def test_aclose_cancels_pending_timer(self, rainy_prefs):
        ai = StubAIService(discovery_query="x")
        library = orchestrator(ai=ai, debounce=10)
        library.notify(rainy_prefs, [make_book()])
        await library.aclose()
        assert ai.intelligence_calls == []


class TestDisplayedShelves:
    def test_deduplicates_across_sources(self):
        library = orchestrator()
        dup = make_book("Dune", "Frank Herbert")
        library.recommendations = [make_book("Rebecca", "Daphne du Maurier")]
        library.featured_book = make_book("Circe", "Madeline Miller")
        library.shelves = [
            Shelf("A", [make_book("rebecca ", "daphne du maurier"), dup, make_book("Circe", "Madeline Miller")]),
            Shelf("B", [make_book("DUNE", "Frank Herbert"), make_book("Emma", "Jane Austen")]),
            Shelf("C", [make_book("Sula", "Toni Morrison")]),
        ]

        shelves = library.displayed_shelves(wishlist=[make_book("Sula", "Toni Morrison")])

        assert [s.title for s in shelves] == ["A", "B"]
        assert [b.title for b in shelves[0].books] == ["Dune"]
        assert [b.title for b in shelves[1].books] == ["Emma"]

    def test_shelves_are_not_mutated(self):
        library = orchestrator()
        library.shelves = [Shelf("A", [make_book(), make_book()])]
        library.displayed_shelves()
        assert len(library.shelves[0].books) == 2



class TestLibraryRegistry:
    async def test_each_client_gets_its_own_library(self, rainy_prefs):
        ai = StubAIService(discovery_query="private query")
        registry = LibraryRegistry(lambda: orchestrator(ai=ai))

        alice, bob = registry.get("alice"), registry.get("bob")
        assert alice is not bob
        assert registry.get("alice") is alice

        await bob.initialize()
        alice.notify(rainy_prefs, [make_book("Rebecca", "Daphne du Maurier")])
        await alice.wait_idle()

        assert alice.shelves[0].title == "Discovery: private query"
        assert all(not s.title.startswith("Discovery") for s in bob.shelves)
        assert bob.recommendations == []
        await registry.aclose()

    async def test_least_recently_used_is_evicted(self):
        registry = LibraryRegistry(orchestrator, max_libraries=2)

        a = registry.get("a")
        registry.get("b")
        registry.get("a")
        registry.get("c")

        assert len(registry) == 2
        assert registry.get("a") is a
        await registry.aclose()

    async def test_eviction_cancels_pending_refinement(self, rainy_prefs):
        ai = StubAIService(discovery_query="x")
        registry = LibraryRegistry(lambda: orchestrator(ai=ai, debounce=0.01), max_libraries=1)

        stale = registry.get("stale")
        stale.notify(rainy_prefs, [make_book()])
        registry.get("newer")
        await stale.wait_idle()

        assert ai.intelligence_calls == []
        await registry.aclose()
