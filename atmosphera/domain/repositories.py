"""Infrastructure interfaces (ports) for dependency inversion."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Sequence

from atmosphera.domain.entities import (
    AtmosphericIntelligence,
    Book,
    CharacterPersona,
    LiveInsight,
    PulseUpdate,
    RecommendationResult,
    UserPreferences,
    WeatherReport,
)

if TYPE_CHECKING:
    from atmosphera.infrastructure.media.audio import AudioClip, ScheduledAudio


class IKeyValueStore(ABC):
    """Namespaced string key/value store holding JSON blobs."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class ICatalogService(ABC):

    @abstractmethod
    async def search_books(self, query: str, language: Optional[str] = None) -> list[Book]:
        pass

    @abstractmethod
    async def get_trending_books(
        self, context: Optional[str] = None, language: Optional[str] = None
    ) -> list[Book]:
        """Never returns an empty list: falls back to the embedded shelf."""
        pass

    @abstractmethod
    async def fetch_hidden_gems(self, language: Optional[str] = None) -> list[Book]:
        pass

    @abstractmethod
    async def fetch_literary_pulse(self, language: Optional[str] = None) -> list[PulseUpdate]:
        pass


class IChatSession(ABC):

    @property
    @abstractmethod
    def persona(self) -> CharacterPersona:
        pass

    @abstractmethod
    async def send(self, message: str) -> str:
        pass


class ILiveSession(ABC):

    @abstractmethod
    async def send_audio(self, pcm16: bytes) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Tear down the session. Safe to call more than once."""
        pass


class IAIService(ABC):

    @abstractmethod
    async def get_book_recommendations(self, prefs: UserPreferences) -> RecommendationResult:
        pass

    @abstractmethod
    async def get_live_insights(self, book: Book) -> LiveInsight:
        pass

    @abstractmethod
    async def get_enhanced_details(self, book: Book) -> dict[str, Any]:
        pass

    @abstractmethod
    async def get_character_persona(self, title: str, author: str) -> CharacterPersona:
        pass

    @abstractmethod
    def create_chat_session(self, persona: CharacterPersona) -> IChatSession:
        pass

    @abstractmethod
    async def generate_mood_image(self, prompt: str) -> str:
        """Return a ``data:image/png;base64,...`` URL."""
        pass

    @abstractmethod
    async def edit_mood_image(self, image: str, prompt: str) -> str:
        pass

    @abstractmethod
    async def generate_audio_preview(self, text: str) -> "AudioClip":
        pass

    @abstractmethod
    async def fetch_trending_titles(self, language: Optional[str] = None) -> list[str]:
        """Grounded search for ``"Title by Author"`` lines currently trending."""
        pass

    @abstractmethod
    async def get_atmospheric_intelligence(
        self,
        prefs: UserPreferences,
        history: Sequence[str],
        recommendations: Sequence[Book],
        shelf_titles: Sequence[str],
    ) -> AtmosphericIntelligence:
        pass

    @abstractmethod
    async def connect_live_session(
        self,
        on_audio: Callable[["ScheduledAudio"], Awaitable[None]],
        on_close: Callable[[], Awaitable[None]],
    ) -> ILiveSession:
        pass


class IWeatherService(ABC):

    @abstractmethod
    async def fetch_local_weather(self, latitude: float, longitude: float) -> WeatherReport:
        pass
