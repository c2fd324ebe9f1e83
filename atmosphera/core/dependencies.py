"""Dependency injection container.

Long-lived resources (HTTP client, AI provider, stores, per-client libraries) are
built once in the application lifespan and parked on ``app.state``. The
provider functions below hand them to routes through ``Depends``; tests swap
them with ``app.dependency_overrides`` or by passing their own fakes to
:func:`build_resources`.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

import httpx
from fastapi import Depends, Header
from fastapi.requests import HTTPConnection

from atmosphera.core.config import Settings, settings
from atmosphera.domain.repositories import (
    IAIService,
    ICatalogService,
    IKeyValueStore,
    IWeatherService,
)
from atmosphera.infrastructure.catalog.google_books import GoogleBooksCatalog
from atmosphera.infrastructure.llm.services import MockAIService, OpenAIService
from atmosphera.infrastructure.media.covers import CoverResolver
from atmosphera.infrastructure.store.memory import MemoryKeyValueStore
from atmosphera.infrastructure.store.redis import RedisKeyValueStore
from atmosphera.infrastructure.weather.open_meteo import OpenMeteoWeatherService
from atmosphera.services.chat import ChatRegistry
from atmosphera.services.library import LibraryOrchestrator, LibraryRegistry
from atmosphera.services.recommendation import RecommendationService
from atmosphera.services.session_store import SessionStore

logger = logging.getLogger(__name__)

ANONYMOUS_CLIENT = "anonymous"


# ---------------------------------------------------------------------------
# Infrastructure factories
# ---------------------------------------------------------------------------
def build_ai_service(config: Settings = settings) -> IAIService:
    """Return the configured AI provider."""
    if config.ai_provider == "mock":
        return MockAIService(recommendation_count=config.recommendation_count)
    elif config.ai_provider == "openai":
        return OpenAIService(
            api_key=config.ai_api_key,
            base_url=config.ai_base_url or None,
            text_model=config.ai_text_model,
            search_model=config.ai_search_model,
            image_model=config.ai_image_model,
            tts_model=config.ai_tts_model,
            tts_voice=config.ai_tts_voice,
            live_model=config.ai_live_model,
            recommendation_count=config.recommendation_count,
            max_retries=config.ai_max_retries,
            backoff_seconds=config.ai_backoff_seconds,
        )
    raise ValueError(f"Unknown AI provider: {config.ai_provider}")


def build_store(config: Settings = settings) -> IKeyValueStore:
    """Return the configured key/value backend."""
    if config.store_backend == "memory":
        return MemoryKeyValueStore()
    elif config.store_backend == "redis":
        return RedisKeyValueStore.from_url(config.redis_url)
    raise ValueError(f"Unknown store backend: {config.store_backend}")


@dataclass
class Resources:
    http: httpx.AsyncClient
    ai_service: IAIService
    catalog: ICatalogService
    covers: CoverResolver
    store: IKeyValueStore
    session_store: SessionStore
    recommendation_service: RecommendationService
    libraries: LibraryRegistry
    weather: IWeatherService
    chats: ChatRegistry

    async def aclose(self) -> None:
        await self.libraries.aclose()
        if isinstance(self.store, RedisKeyValueStore):
            await self.store.close()
        await self.http.aclose()


def build_resources(
    config: Settings = settings,
    *,
    http: Optional[httpx.AsyncClient] = None,
    ai_service: Optional[IAIService] = None,
    catalog: Optional[ICatalogService] = None,
    store: Optional[IKeyValueStore] = None,
    weather: Optional[IWeatherService] = None,
) -> Resources:
    http = http or httpx.AsyncClient(timeout=config.catalog_timeout)
    ai_service = ai_service or build_ai_service(config)
    catalog = catalog or GoogleBooksCatalog(http, base_url=config.catalog_base_url)
    covers = CoverResolver(http, base_url=config.covers_base_url)
    store = store or build_store(config)
    recommendation_service = RecommendationService(ai_service, catalog, covers)

    def new_library() -> LibraryOrchestrator:
        return LibraryOrchestrator(
            ai_service,
            catalog,
            recommendation_service,
            debounce_seconds=config.refine_debounce_seconds,
        )

    libraries = LibraryRegistry(new_library, max_libraries=config.max_libraries)
    logger.info(
        "Resources ready (ai=%s, store=%s)", config.ai_provider, config.store_backend
    )
    return Resources(
        http=http,
        ai_service=ai_service,
        catalog=catalog,
        covers=covers,
        store=store,
        session_store=SessionStore(store, namespace=config.store_namespace),
        recommendation_service=recommendation_service,
        libraries=libraries,
        weather=weather
        or OpenMeteoWeatherService(
            http, base_url=config.weather_base_url, geocode_url=config.geocode_base_url
        ),
        chats=ChatRegistry(ai_service),
    )


# ---------------------------------------------------------------------------
# Request-scoped providers
# ---------------------------------------------------------------------------
def get_resources(connection: HTTPConnection) -> Resources:
    """Resources built by the application lifespan."""
    return connection.app.state.resources


def get_ai_service(resources: Resources = Depends(get_resources)) -> IAIService:
    """Get the configured AI provider."""
    return resources.ai_service


def get_catalog(resources: Resources = Depends(get_resources)) -> ICatalogService:
    """Get the books catalog client."""
    return resources.catalog


def get_cover_resolver(resources: Resources = Depends(get_resources)) -> CoverResolver:
    """Get the cover resolver."""
    return resources.covers


def get_session_store(resources: Resources = Depends(get_resources)) -> SessionStore:
    """Get the per-client session store."""
    return resources.session_store


def get_recommendation_service(
    resources: Resources = Depends(get_resources),
) -> RecommendationService:
    """Get the recommendation service."""
    return resources.recommendation_service


def get_weather_service(resources: Resources = Depends(get_resources)) -> IWeatherService:
    """Get the local weather service."""
    return resources.weather


def get_chat_registry(resources: Resources = Depends(get_resources)) -> ChatRegistry:
    """Get the registry of open chat sessions."""
    return resources.chats


# ---------------------------------------------------------------------------
# Client identity
# ---------------------------------------------------------------------------
def get_client_id(
    x_client_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """Namespace for session data; there is no authentication."""
    client_id = (x_client_id or "").strip()
    return client_id[:128] or ANONYMOUS_CLIENT


def get_library(
    client_id: Annotated[str, Depends(get_client_id)],
    resources: Resources = Depends(get_resources),
) -> LibraryOrchestrator:
    """Get the calling client's library orchestrator."""
    return resources.libraries.get(client_id)
