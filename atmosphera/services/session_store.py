"""Session persistence: wishlist, active read, reading progress and training signals.

Every record is a JSON blob under a namespaced key::

    <namespace>:<client_id>:wishlist          -> [Book, ...]
    <namespace>:<client_id>:active_read       -> Book
    <namespace>:<client_id>:reading_progress  -> ReadingProgress
    <namespace>:<client_id>:training_signals  -> [TrainingSignal, ...]

Wishlist membership and active-read matching use the normalized
``(title, author)`` identity (see :func:`atmosphera.domain.entities.identity_key`),
never ``Book.id``. ``ReadingProgress.percentage`` is recomputed on every write.

Writes are read-modify-write without locking; two concurrent mutations of
the same record for one client can lose an update.
"""

import logging
from typing import Optional, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from atmosphera.core.events import (
    ActiveReadUpdated,
    EventChannel,
    ProgressUpdated,
    StoreEvent,
    TrainingSignalsUpdated,
    WishlistUpdated,
)
from atmosphera.domain.entities import Book, ReadingProgress, TrainingSignal, identity_key
from atmosphera.domain.repositories import IKeyValueStore
from atmosphera.infrastructure.store.records import (
    BookList,
    BookRecord,
    ProgressRecord,
    TrainingSignalList,
    TrainingSignalRecord,
    dump_list,
)

logger = logging.getLogger(__name__)

WISHLIST_KEY = "wishlist"
ACTIVE_READ_KEY = "active_read"
PROGRESS_KEY = "reading_progress"
TRAINING_KEY = "training_signals"
DEFAULT_TOTAL_PAGES = 300

R = TypeVar("R", bound=BaseModel)


class SessionStore:
    """Per-client persistence over an :class:`IKeyValueStore`."""

    def __init__(self, store: IKeyValueStore, namespace: str = "atmosphera"):
        self.store = store
        self.namespace = namespace
        self.events: EventChannel[StoreEvent] = EventChannel(f"{namespace}.session")

    def _key(self, client_id: str, name: str) -> str:
        return f"{self.namespace}:{client_id}:{name}"

    async def _load(self, client_id: str, name: str, model: type[R]) -> Optional[R]:
        raw = await self.store.get(self._key(client_id, name))
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError:
            logger.error("Corrupt %s blob for client %s; ignoring", name, client_id)
            return None

    async def _load_list(self, client_id: str, name: str, adapter: TypeAdapter) -> list:
        raw = await self.store.get(self._key(client_id, name))
        if raw is None:
            return []
        try:
            return adapter.validate_json(raw)
        except ValidationError:
            logger.error("Corrupt %s blob for client %s; ignoring", name, client_id)
            return []

    # ------------------------------------------------------------------
    # Wishlist
    # ------------------------------------------------------------------

    async def get_wishlist(self, client_id: str) -> list[Book]:
        records = await self._load_list(client_id, WISHLIST_KEY, BookList)
        return [record.to_entity() for record in records]

    async def is_in_wishlist(self, client_id: str, book: Book) -> bool:
        wanted = book.identity
        return any(b.identity == wanted for b in await self.get_wishlist(client_id))

    async def toggle_wishlist(self, client_id: str, book: Book) -> bool:
        """Add *book* if absent, remove it if present. Returns the new membership."""
        books = await self.get_wishlist(client_id)
        wanted = book.identity
        index = next((i for i, b in enumerate(books) if b.identity == wanted), None)

        if index is not None:
            books.pop(index)
            saved = False
        else:
            books.append(book.ensure_id())
            saved = True

        records = [BookRecord.model_validate(b) for b in books]
        await self.store.set(self._key(client_id, WISHLIST_KEY), dump_list(BookList, records))
        logger.info(
            "Wishlist %s '%s' for client %s", "added" if saved else "removed", book.title, client_id
        )
        self.events.publish(WishlistUpdated(client_id=client_id, book=book, saved=saved))
        return saved

    # ------------------------------------------------------------------
    # Active read & progress
    # ------------------------------------------------------------------

    async def get_active_read(self, client_id: str) -> Optional[Book]:
        record = await self._load(client_id, ACTIVE_READ_KEY, BookRecord)
        return record.to_entity() if record else None

    async def set_active_read(self, client_id: str, book: Optional[Book]) -> None:
        """Make *book* the active read, or clear it with ``None``.

        Progress is reset only when the title changes; re-selecting the
        current book keeps its progress.
        """
        if book is None:
            await self.store.delete(self._key(client_id, ACTIVE_READ_KEY))
        else:
            current = await self.get_active_read(client_id)
            if current is None or identity_key(current.title, "") != identity_key(book.title, ""):
                progress = ReadingProgress(
                    book_title=book.title,
                    current_page=0,
                    total_pages=book.page_count or DEFAULT_TOTAL_PAGES,
                ).recompute()
                await self._save_progress(client_id, progress)
                self.events.publish(ProgressUpdated(client_id=client_id, progress=progress))
            record = BookRecord.model_validate(book.ensure_id())
            await self.store.set(self._key(client_id, ACTIVE_READ_KEY), record.dump_json())
        self.events.publish(ActiveReadUpdated(client_id=client_id, book=book))

    async def get_reading_progress(self, client_id: str) -> Optional[ReadingProgress]:
        record = await self._load(client_id, PROGRESS_KEY, ProgressRecord)
        return record.to_entity() if record else None

    async def _save_progress(self, client_id: str, progress: ReadingProgress) -> None:
        record = ProgressRecord.model_validate(progress)
        await self.store.set(self._key(client_id, PROGRESS_KEY), record.dump_json())

    async def save_reading_progress(
        self, client_id: str, progress: ReadingProgress
    ) -> ReadingProgress:
        progress.recompute()
        await self._save_progress(client_id, progress)
        self.events.publish(ProgressUpdated(client_id=client_id, progress=progress))
        return progress

    async def update_progress(
        self,
        client_id: str,
        *,
        current_page: Optional[int] = None,
        total_pages: Optional[int] = None,
    ) -> ReadingProgress:
        """Merge-update page counters of the active read's progress record."""
        progress = await self.get_reading_progress(client_id)
        if progress is None or await self.get_active_read(client_id) is None:
            raise ValueError("No active read to track progress for")
        if total_pages is not None:
            if total_pages < 1:
                raise ValueError("total_pages must be at least 1")
            progress.total_pages = total_pages
        if current_page is not None:
            if current_page < 0:
                raise ValueError("current_page must not be negative")
            progress.current_page = current_page
        return await self.save_reading_progress(client_id, progress)

    # ------------------------------------------------------------------
    # Training signals
    # ------------------------------------------------------------------

    async def get_training_signals(self, client_id: str) -> list[TrainingSignal]:
        records = await self._load_list(client_id, TRAINING_KEY, TrainingSignalList)
        return [record.to_entity() for record in records]

    async def save_training_signal(
        self, client_id: str, signal: TrainingSignal
    ) -> list[TrainingSignal]:
        """Append *signal* and return the full list, oldest first.

        Raises ``ValueError`` (pydantic ``ValidationError``) for an unknown
        feedback type or a weight outside 0-100.
        """
        record = TrainingSignalRecord.model_validate(signal)
        records = await self._load_list(client_id, TRAINING_KEY, TrainingSignalList)
        records.append(record)
        await self.store.set(
            self._key(client_id, TRAINING_KEY), dump_list(TrainingSignalList, records)
        )
        signals = [r.to_entity() for r in records]
        logger.info(
            "Training signal '%s' (%s) for client %s",
            signal.book_title,
            signal.feedback_type,
            client_id,
        )
        self.events.publish(TrainingSignalsUpdated(client_id=client_id, signals=tuple(signals)))
        return signals

    async def clear_training_data(self, client_id: str) -> None:
        await self.store.delete(self._key(client_id, TRAINING_KEY))
        self.events.publish(TrainingSignalsUpdated(client_id=client_id, signals=()))
