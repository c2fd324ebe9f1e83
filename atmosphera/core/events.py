"""Typed change notifications for the session store.

Each :class:`EventChannel` is owned by the component that publishes on it;
there is no process-wide bus.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from atmosphera.domain.entities import Book, ReadingProgress, TrainingSignal

logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True)
class WishlistUpdated:
    client_id: str
    book: Book
    saved: bool


@dataclass(frozen=True)
class ActiveReadUpdated:
    client_id: str
    book: Optional[Book]


@dataclass(frozen=True)
class ProgressUpdated:
    client_id: str
    progress: ReadingProgress


@dataclass(frozen=True)
class TrainingSignalsUpdated:
    client_id: str
    signals: tuple[TrainingSignal, ...]


StoreEvent = WishlistUpdated | ActiveReadUpdated | ProgressUpdated | TrainingSignalsUpdated


class EventChannel(Generic[E]):
    """Synchronous publish/subscribe channel with typed payloads."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: list[Callable[[E], None]] = []

    def subscribe(self, callback: Callable[[E], None]) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: E) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.error("Subscriber on %s failed for %r", self.name, event, exc_info=True)

    def __len__(self) -> int:
        return len(self._subscribers)
