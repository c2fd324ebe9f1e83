"""Library API routes (background shelves and refinement)."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from atmosphera.api.schemas import (
    BookSchema,
    IntelligenceSchema,
    LibraryResponse,
    PulseSchema,
    RefineAcceptedResponse,
    RefineRequest,
    ShelfSchema,
)
from atmosphera.core.dependencies import get_client_id, get_library, get_session_store
from atmosphera.services.library import LibraryOrchestrator
from atmosphera.services.session_store import SessionStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/library", tags=["library"])


@router.get("", response_model=LibraryResponse)
async def get_library_snapshot(
    library: Annotated[LibraryOrchestrator, Depends(get_library)],
    session_store: Annotated[SessionStore, Depends(get_session_store)],
    client_id: Annotated[str, Depends(get_client_id)],
    language: Optional[str] = None,
) -> LibraryResponse:
    """The client's current shelves, initializing the library on first use.

    Without a ``language`` the library keeps the one it was last loaded in.

    Books already in the client's wishlist, the latest recommendations or the
    featured slot are not repeated on the shelves.
    """
    await library.ensure_initialized(language)
    wishlist = await session_store.get_wishlist(client_id)
    return LibraryResponse(
        state=library.state.value,
        refine_state=library.refine_state.value,
        featured_book=(
            BookSchema.model_validate(library.featured_book) if library.featured_book else None
        ),
        shelves=[ShelfSchema.model_validate(s) for s in library.displayed_shelves(wishlist)],
        pulses=[PulseSchema.model_validate(p) for p in library.pulses],
        intelligence=(
            IntelligenceSchema.model_validate(library.intelligence)
            if library.intelligence
            else None
        ),
        error=library.error,
    )


@router.post(
    "/refine", response_model=RefineAcceptedResponse, status_code=status.HTTP_202_ACCEPTED
)
async def refine_library(
    body: RefineRequest,
    library: Annotated[LibraryOrchestrator, Depends(get_library)],
) -> RefineAcceptedResponse:
    """Schedule a debounced refinement; results show up on the next snapshot."""
    try:
        prefs = body.preferences.to_entity()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    library.notify(prefs, [b.to_entity() for b in body.recommendations], body.history)
    return RefineAcceptedResponse(refine_state=library.refine_state.value)
