"""Domain entities for Atmosphera."""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class WeatherType(str, Enum):
    SUNNY = "Sunny & Bright"
    RAINY = "Rainy & Melancholic"
    STORMY = "Stormy & Intense"
    CLOUDY = "Cloudy & Gray"
    SNOWY = "Snowy & Quiet"
    NIGHT = "Clear Night"
    FOGGY = "Foggy & Mysterious"
    WINDY = "Windy & Crisp"
    HUMID = "Humid & Muggy"
    OVERCAST = "Overcast & Gloomy"


class MoodType(str, Enum):
    HAPPY = "Joyful"
    SAD = "Melancholic"
    ADVENTUROUS = "Adventurous"
    RELAXED = "Relaxed"
    INTENSE = "Intense"
    CONTEMPLATIVE = "Contemplative"
    ROMANTIC = "Romantic"
    CURIOUS = "Curious"


class ReadingPace(str, Enum):
    SLOW = "Slow burn"
    FAST = "Fast-paced page turner"
    MEDIUM = "Moderate pace"


class WorldSetting(str, Enum):
    REAL_WORLD = "Modern Real World"
    HISTORICAL = "Historical Past"
    FANTASY = "High Fantasy Realm"
    SCIFI = "Sci-Fi / Futuristic"
    DYSTOPIAN = "Dystopian / Post-Apocalyptic"
    MAGICAL_REALISM = "Magical Realism"
    GOTHIC = "GOTHIC / Eerie"
    SURPRISE = "Surprise Me"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def identity_key(title: str, author: str) -> str:
    """Normalized ``(title, author)`` identity used for wishlist/active-read matching.

    Both parts are stripped and casefolded, so ``"Dune "`` by ``"frank herbert"``
    matches ``"Dune"`` by ``"Frank Herbert"``.
    """
    return f"{(title or '').strip().casefold()}\x1f{(author or '').strip().casefold()}"


def book_id_for(title: str, author: str) -> str:
    return hashlib.sha1(identity_key(title, author).encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class UserPreferences:
    """Questionnaire answers.

    Immutable once built; a questionnaire restart produces a new record.
    """

    weather: Optional[WeatherType] = None
    mood: Optional[MoodType] = None
    pace: Optional[ReadingPace] = None
    setting: Optional[WorldSetting] = None
    language: str = "English"
    age: str = ""
    specific_interest: str = ""
    preferred_format: str = "text"  # text | audio


@dataclass
class Price:
    amount: float
    currency_code: str


@dataclass
class Book:
    """A denormalized book record.

    AI-authored fields and catalog-sourced fields live side by side; either
    half may be missing depending on where the record came from.
    """

    title: str
    author: str
    id: Optional[str] = None
    isbn: Optional[str] = None
    genre: str = "General"
    description: str = ""
    reasoning: str = ""
    mood_color: str = ""
    excerpt: str = ""
    ebook_url: Optional[str] = None
    movie_pairing: Optional[str] = None
    music_pairing: Optional[str] = None
    food_pairing: Optional[str] = None
    language: Optional[str] = None
    atmospheric_role: Optional[str] = None
    cognitive_effort: Optional[str] = None  # Light | Moderate | Demanding
    section_fit: Optional[str] = None
    moment_fit: Optional[str] = None
    # catalog fields
    cover_url: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    saleability: Optional[str] = None
    price: Optional[Price] = None
    buy_link: Optional[str] = None
    access_view_status: Optional[str] = None
    pdf_available: Optional[bool] = None
    epub_available: Optional[bool] = None

    @property
    def identity(self) -> str:
        return identity_key(self.title, self.author)

    def ensure_id(self) -> "Book":
        if not self.id:
            self.id = book_id_for(self.title, self.author)
        return self


@dataclass
class Shelf:
    title: str
    books: list[Book] = field(default_factory=list)
    is_live: bool = False


@dataclass
class ReadingProgress:
    """Reading progress for the active read.

    ``percentage`` is derived from ``current_page``/``total_pages`` and must
    never be set on its own; use :meth:`recompute`.
    """

    book_title: str
    current_page: int = 0
    total_pages: int = 300
    percentage: int = 0
    last_updated: str = field(default_factory=utcnow_iso)

    def recompute(self) -> "ReadingProgress":
        self.total_pages = max(int(self.total_pages), 1)
        self.current_page = min(max(int(self.current_page), 0), self.total_pages)
        self.percentage = round(self.current_page / self.total_pages * 100)
        self.last_updated = utcnow_iso()
        return self


@dataclass
class TrainingSignal:
    """Explicit reader feedback on a book, weighted 0-100."""

    book_title: str
    context_note: str
    feedback_type: str = "positive"  # positive | negative
    book_author: str = "User Input"
    atmospheric_weight: int = 50
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:9])
    timestamp: str = field(default_factory=utcnow_iso)


@dataclass(frozen=True)
class CharacterPersona:
    name: str
    greeting: str
    system_instruction: str


@dataclass
class ChatMessage:
    role: str  # user | model
    text: str


@dataclass(frozen=True)
class WebSource:
    uri: str
    title: str


@dataclass
class LiveInsight:
    text: str
    sources: list[WebSource] = field(default_factory=list)


@dataclass
class PulseUpdate:
    type: str
    title: str
    snippet: str
    url: Optional[str] = None


@dataclass
class RecommendationResult:
    heading: str
    insight: str
    books: list[Book]
    anti_recommendation: str = ""
    confidence: str = "Medium"  # High | Medium | Experimental


@dataclass
class AtmosphericIntelligence:
    insight: str
    additional_discovery_query: Optional[str] = None


@dataclass
class WeatherReport:
    weather: WeatherType
    temperature: float
    is_day: bool
    location_name: Optional[str] = None
