"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings (``ATMOSPHERA_*`` environment variables)."""

    ai_provider: Literal["mock", "openai"] = "mock"
    ai_api_key: str = ""
    ai_base_url: str = ""  # e.g. an OpenAI-compatible gateway
    ai_text_model: str = "gpt-4o-mini"
    ai_search_model: str = "gpt-4o-mini"
    ai_image_model: str = "gpt-image-1"
    ai_tts_model: str = "gpt-4o-mini-tts"
    ai_tts_voice: str = "coral"
    ai_live_model: str = "gpt-4o-realtime-preview"
    ai_max_retries: int = 2
    ai_backoff_seconds: float = 1.0
    recommendation_count: int = 4

    catalog_base_url: str = "https://www.googleapis.com/books/v1"
    catalog_timeout: float = 10.0
    covers_base_url: str = "https://covers.openlibrary.org"
    weather_base_url: str = "https://api.open-meteo.com/v1"
    geocode_base_url: str = "https://api.bigdatacloud.net/data"

    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379"
    store_namespace: str = "atmosphera"

    refine_debounce_seconds: float = 2.0
    max_libraries: int = 256
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_prefix": "ATMOSPHERA_", "extra": "ignore"}


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
