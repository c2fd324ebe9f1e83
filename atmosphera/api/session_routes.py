"""Per-client session API routes (wishlist, active read, progress, training signals).

Everything is namespaced by the ``X-Client-ID`` header.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from atmosphera.api.schemas import (
    BookSchema,
    ProgressSchema,
    ProgressUpdateRequest,
    TrainingSignalRequest,
    TrainingSignalSchema,
    WishlistToggleResponse,
)
from atmosphera.core.dependencies import get_client_id, get_session_store
from atmosphera.services.session_store import SessionStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/session", tags=["session"])


# ---------------------------------------------------------------------------
# Wishlist
# ---------------------------------------------------------------------------
@router.get("/wishlist", response_model=list[BookSchema])
async def get_wishlist(
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> list[BookSchema]:
    """Saved books, oldest first."""
    books = await session_store.get_wishlist(client_id)
    return [BookSchema.model_validate(b) for b in books]


@router.post("/wishlist", response_model=WishlistToggleResponse)
async def toggle_wishlist(
    body: BookSchema,
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> WishlistToggleResponse:
    """Add the book, or remove it when it is already saved."""
    saved = await session_store.toggle_wishlist(client_id, body.to_entity())
    books = await session_store.get_wishlist(client_id)
    return WishlistToggleResponse(
        saved=saved, wishlist=[BookSchema.model_validate(b) for b in books]
    )


# ---------------------------------------------------------------------------
# Active read
# ---------------------------------------------------------------------------
@router.get("/active-read", response_model=Optional[BookSchema])
async def get_active_read(
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> Optional[BookSchema]:
    """The book being read, or null."""
    book = await session_store.get_active_read(client_id)
    return BookSchema.model_validate(book) if book else None


@router.put("/active-read", response_model=BookSchema)
async def set_active_read(
    body: BookSchema,
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> BookSchema:
    """Start reading a book; switching to a different title resets progress."""
    book = body.to_entity()
    await session_store.set_active_read(client_id, book)
    return BookSchema.model_validate(book)


@router.delete("/active-read", status_code=status.HTTP_204_NO_CONTENT)
async def clear_active_read(
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> Response:
    """Stop reading; progress is kept until another book is started."""
    await session_store.set_active_read(client_id, None)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Reading progress
# ---------------------------------------------------------------------------
@router.get("/progress", response_model=Optional[ProgressSchema])
async def get_reading_progress(
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> Optional[ProgressSchema]:
    """Progress of the active read, or null."""
    progress = await session_store.get_reading_progress(client_id)
    return ProgressSchema.model_validate(progress) if progress else None


@router.patch("/progress", response_model=ProgressSchema)
async def update_reading_progress(
    body: ProgressUpdateRequest,
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> ProgressSchema:
    """Update page counters; 409 when there is no active read."""
    try:
        progress = await session_store.update_progress(
            client_id, current_page=body.current_page, total_pages=body.total_pages
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return ProgressSchema.model_validate(progress)


# ---------------------------------------------------------------------------
# Training signals
# ---------------------------------------------------------------------------
@router.get("/training-signals", response_model=list[TrainingSignalSchema])
async def get_training_signals(
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> list[TrainingSignalSchema]:
    """Recorded feedback signals, oldest first."""
    signals = await session_store.get_training_signals(client_id)
    return [TrainingSignalSchema.model_validate(s) for s in signals]


@router.post(
    "/training-signals",
    response_model=list[TrainingSignalSchema],
    status_code=status.HTTP_201_CREATED,
)
async def add_training_signal(
    body: TrainingSignalRequest,
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> list[TrainingSignalSchema]:
    """Record one feedback signal and return the full list."""
    signals = await session_store.save_training_signal(client_id, body.to_entity())
    return [TrainingSignalSchema.model_validate(s) for s in signals]


@router.delete("/training-signals", status_code=status.HTTP_204_NO_CONTENT)
async def clear_training_signals(
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
) -> Response:
    """Forget every recorded signal."""
    await session_store.clear_training_data(client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
