import asyncio
import json

import pytest

from atmosphera.core.events import (
    ActiveReadUpdated,
    ProgressUpdated,
    TrainingSignalsUpdated,
    WishlistUpdated,
)
from atmosphera.domain.entities import Price, ReadingProgress, TrainingSignal
from atmosphera.infrastructure.store.memory import MemoryKeyValueStore
from atmosphera.services.session_store import SessionStore

from conftest import make_book

CLIENT = "reader-1"


class TestWishlist:
    async def test_toggle_twice_restores_membership(self, session_store):
        book = make_book()
        assert not await session_store.is_in_wishlist(CLIENT, book)

        assert await session_store.toggle_wishlist(CLIENT, book) is True
        assert await session_store.is_in_wishlist(CLIENT, book)

        assert await session_store.toggle_wishlist(CLIENT, book) is False
        assert not await session_store.is_in_wishlist(CLIENT, book)
        assert await session_store.get_wishlist(CLIENT) == []

    async def test_identity_is_normalized(self, session_store):
        await session_store.toggle_wishlist(CLIENT, make_book("Dune ", "frank herbert"))
        assert await session_store.is_in_wishlist(CLIENT, make_book("dune", "Frank Herbert"))

    async def test_id_assigned_on_save(self, session_store):
        await session_store.toggle_wishlist(CLIENT, make_book())
        [saved] = await session_store.get_wishlist(CLIENT)
        assert saved.id

    async def test_clients_are_isolated(self, session_store):
        await session_store.toggle_wishlist(CLIENT, make_book())
        assert await session_store.get_wishlist("someone-else") == []

    async def test_events(self, session_store):
        seen = []
        unsubscribe = session_store.events.subscribe(seen.append)
        book = make_book()

        await session_store.toggle_wishlist(CLIENT, book)
        await session_store.toggle_wishlist(CLIENT, book)
        unsubscribe()
        await session_store.toggle_wishlist(CLIENT, book)

        assert [type(e) for e in seen] == [WishlistUpdated, WishlistUpdated]
        assert [e.saved for e in seen] == [True, False]

    async def test_failing_subscriber_does_not_break_mutation(self, session_store):
        def explode(event):
            raise RuntimeError("subscriber bug")

        session_store.events.subscribe(explode)
        assert await session_store.toggle_wishlist(CLIENT, make_book()) is True
        assert len(await session_store.get_wishlist(CLIENT)) == 1

    async def test_corrupt_blob_reads_as_empty(self):
        store = MemoryKeyValueStore()
        await store.set("test:reader-1:wishlist", "{not json")
        assert await SessionStore(store, namespace="test").get_wishlist(CLIENT) == []


class TestActiveRead:
    async def test_new_title_resets_progress(self, session_store):
        await session_store.set_active_read(CLIENT, make_book("Rebecca", "Daphne du Maurier", page_count=410))
        progress = await session_store.update_progress(CLIENT, current_page=205)
        assert progress.percentage == 50

        await session_store.set_active_read(CLIENT, make_book("Dracula", "Bram Stoker"))
        progress = await session_store.get_reading_progress(CLIENT)
        assert progress.book_title == "Dracula"
        assert (progress.current_page, progress.total_pages, progress.percentage) == (0, 300, 0)

    async def test_same_title_keeps_progress(self, session_store):
        book = make_book("Rebecca", "Daphne du Maurier", page_count=400)
        await session_store.set_active_read(CLIENT, book)
        await session_store.update_progress(CLIENT, current_page=100)

        await session_store.set_active_read(CLIENT, make_book("Rebecca", "Daphne du Maurier"))
        progress = await session_store.get_reading_progress(CLIENT)
        assert (progress.current_page, progress.total_pages, progress.percentage) == (100, 400, 25)

    async def test_clear(self, session_store):
        await session_store.set_active_read(CLIENT, make_book())
        await session_store.set_active_read(CLIENT, None)
        assert await session_store.get_active_read(CLIENT) is None

    async def test_events_on_switch(self, session_store):
        seen = []
        session_store.events.subscribe(seen.append)
        await session_store.set_active_read(CLIENT, make_book())
        assert [type(e) for e in seen] == [ProgressUpdated, ActiveReadUpdated]


class TestProgress:
    @pytest.mark.parametrize(
        "current, total, expected",
        [(0, 300, 0), (1, 3, 33), (2, 3, 67), (150, 300, 50), (300, 300, 100), (999, 10, 100)],
    )
    async def test_percentage_is_always_derived(self, session_store, current, total, expected):
        progress = ReadingProgress(book_title="X", current_page=current, total_pages=total, percentage=7)
        saved = await session_store.save_reading_progress(CLIENT, progress)
        assert saved.percentage == expected
        stored = await session_store.get_reading_progress(CLIENT)
        assert stored.percentage == round(stored.current_page / stored.total_pages * 100)

    async def test_update_without_active_read(self, session_store):
        with pytest.raises(ValueError):
            await session_store.update_progress(CLIENT, current_page=3)

    async def test_update_rejects_bad_totals(self, session_store):
        await session_store.set_active_read(CLIENT, make_book())
        with pytest.raises(ValueError):
            await session_store.update_progress(CLIENT, total_pages=0)
        with pytest.raises(ValueError):
            await session_store.update_progress(CLIENT, current_page=-1)

    async def test_total_change_recomputes(self, session_store):
        await session_store.set_active_read(CLIENT, make_book(page_count=200))
        await session_store.update_progress(CLIENT, current_page=50)
        progress = await session_store.update_progress(CLIENT, total_pages=100)
        assert progress.percentage == 50

    async def test_update_after_active_read_cleared(self, session_store):
        await session_store.set_active_read(CLIENT, make_book())
        await session_store.set_active_read(CLIENT, None)
        with pytest.raises(ValueError):
            await session_store.update_progress(CLIENT, current_page=10)


class TestStoredFormat:
    async def test_records_are_camel_case_json(self):
        store = MemoryKeyValueStore()
        sessions = SessionStore(store, namespace="test")
        book = make_book(page_count=12, cover_url="https://x/y.jpg", price=Price(4.99, "GBP"))

        await sessions.set_active_read(CLIENT, book)

        stored = json.loads(await store.get("test:reader-1:active_read"))
        assert stored["pageCount"] == 12 and stored["coverUrl"] == "https://x/y.jpg"
        assert stored["price"] == {"amount": 4.99, "currencyCode": "GBP"}
        assert "isbn" not in stored
        progress = json.loads(await store.get("test:reader-1:reading_progress"))
        assert progress["bookTitle"] == "Dune" and progress["totalPages"] == 12
        assert await sessions.get_active_read(CLIENT) == book

    async def test_blob_written_by_browser_client_is_readable(self):
        store = MemoryKeyValueStore()
        await store.set(
            "test:reader-1:wishlist",
            json.dumps([{"title": "Emma", "author": "Jane Austen", "moodColor": "#ffeedd"}]),
        )
        [book] = await SessionStore(store, namespace="test").get_wishlist(CLIENT)
        assert (book.title, book.mood_color, book.genre) == ("Emma", "#ffeedd", "General")


class TestTrainingSignals:
    async def test_save_appends_and_clear_empties(self, session_store):
        first = TrainingSignal(book_title="Dune", context_note="Loved the sand.")
        second = TrainingSignal(
            book_title="Emma", context_note="Too sunny.", feedback_type="negative", atmospheric_weight=80
        )

        await session_store.save_training_signal(CLIENT, first)
        signals = await session_store.save_training_signal(CLIENT, second)

        assert [s.book_title for s in signals] == ["Dune", "Emma"]
        assert await session_store.get_training_signals(CLIENT) == signals
        await session_store.clear_training_data(CLIENT)
        assert await session_store.get_training_signals(CLIENT) == []

    @pytest.mark.parametrize(
        "changes", [{"atmospheric_weight": 101}, {"atmospheric_weight": -1}, {"feedback_type": "meh"}]
    )
    async def test_invalid_signal_is_rejected(self, session_store, changes):
        signal = TrainingSignal(book_title="Dune", context_note="ok", **changes)
        with pytest.raises(ValueError):
            await session_store.save_training_signal(CLIENT, signal)
        assert await session_store.get_training_signals(CLIENT) == []

    async def test_events(self, session_store):
        seen = []
        session_store.events.subscribe(seen.append)

        await session_store.save_training_signal(CLIENT, TrainingSignal("Dune", "Vast."))
        await session_store.clear_training_data(CLIENT)

        assert [type(e) for e in seen] == [TrainingSignalsUpdated, TrainingSignalsUpdated]
        assert [len(e.signals) for e in seen] == [1, 0]


class YieldingStore(MemoryKeyValueStore):
    """Gives other tasks a turn between reading and writing a key."""

    async def get(self, key):
        value = await super().get(key)
        await asyncio.sleep(0)
        return value


async def test_concurrent_toggles_for_one_client_lose_an_update():
    sessions = SessionStore(YieldingStore(), namespace="test")

    results = await asyncio.gather(
        sessions.toggle_wishlist(CLIENT, make_book("Dune", "Frank Herbert")),
        sessions.toggle_wishlist(CLIENT, make_book("Emma", "Jane Austen")),
    )

    # both calls report success, but only the last write survives
    assert results == [True, True]
    assert [b.title for b in await sessions.get_wishlist(CLIENT)] == ["Emma"]
