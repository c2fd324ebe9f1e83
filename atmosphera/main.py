"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from atmosphera.api.chat_routes import router as chat_router
from atmosphera.api.library_routes import router as library_router
from atmosphera.api.live_routes import router as live_router
from atmosphera.api.media_routes import router as media_router
from atmosphera.api.recommendation_routes import router as recommendation_router
from atmosphera.api.routes import router as books_router
from atmosphera.api.session_routes import router as session_router
from atmosphera.api.weather_routes import router as weather_router
from atmosphera.core.config import settings
from atmosphera.core.dependencies import Resources, build_resources
from atmosphera.infrastructure.llm.errors import AIServiceError

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please reload."


def create_app(resources_factory: Callable[[], Resources] = build_resources) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info("Starting Atmosphera application")
        app.state.resources = resources_factory()
        yield
        logger.info("Shutting down Atmosphera application")
        await app.state.resources.aclose()

    app = FastAPI(
        title="Atmosphera",
        description="Weather- and mood-aware book discovery",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AIServiceError)
    async def ai_error_handler(request: Request, exc: AIServiceError) -> JSONResponse:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.kind, "detail": exc.user_message},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "unknown", "detail": GENERIC_ERROR})

    app.include_router(recommendation_router)
    app.include_router(library_router)
    app.include_router(books_router)
    app.include_router(media_router)
    app.include_router(chat_router)
    app.include_router(live_router)
    app.include_router(session_router)
    app.include_router(weather_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
