"""Pydantic schemas for API requests and responses.

Field names travel as camelCase on the wire (``coverUrl``, ``pageCount``);
Python code uses snake_case. Book payloads share their shape with the stored
session records. Responses are built from the domain dataclasses
with ``from_attributes``.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from atmosphera.domain.entities import (
    MoodType,
    ReadingPace,
    TrainingSignal,
    UserPreferences,
    WeatherType,
    WorldSetting,
)
from atmosphera.infrastructure.store.records import (
    BookRecord,
    ProgressRecord,
    TrainingSignalRecord,
)
from atmosphera.services.questionnaire import preferences_from_answers


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------
class BookSchema(BookRecord):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)


class BookListResponse(CamelModel):
    books: list[BookSchema]
    total: int


class WebSourceSchema(CamelModel):
    uri: str
    title: str


class InsightResponse(CamelModel):
    text: str
    sources: list[WebSourceSchema]


class CoverResponse(CamelModel):
    cover_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Preferences / recommendations
# ---------------------------------------------------------------------------
class PreferencesRequest(CamelModel):
    weather: Optional[WeatherType] = None
    mood: Optional[MoodType] = None
    pace: Optional[ReadingPace] = None
    setting: Optional[WorldSetting] = None
    language: str = "English"
    age: str = ""
    specific_interest: str = ""
    preferred_format: Literal["text", "audio"] = "text"

    def to_entity(self) -> UserPreferences:
        """Walk the questionnaire with these answers; raises ``ValueError`` if incomplete."""
        return preferences_from_answers(**self.model_dump())


class RecommendationResponse(CamelModel):
    heading: str
    insight: str
    anti_recommendation: str = ""
    confidence: str = "Medium"
    books: list[BookSchema]


class RefineRequest(CamelModel):
    preferences: PreferencesRequest
    recommendations: list[BookSchema] = Field(default_factory=list)
    history: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------
class ShelfSchema(CamelModel):
    title: str
    books: list[BookSchema]
    is_live: bool = False


class PulseSchema(CamelModel):
    type: str
    title: str
    snippet: str
    url: Optional[str] = None


class IntelligenceSchema(CamelModel):
    insight: str
    additional_discovery_query: Optional[str] = None


class LibraryResponse(CamelModel):
    state: str
    refine_state: str
    featured_book: Optional[BookSchema] = None
    shelves: list[ShelfSchema]
    pulses: list[PulseSchema]
    intelligence: Optional[IntelligenceSchema] = None
    error: Optional[str] = None


class RefineAcceptedResponse(CamelModel):
    refine_state: str


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------
class AudioRequest(CamelModel):
    text: str = Field(..., min_length=1)


class MoodImageRequest(CamelModel):
    prompt: str = Field(..., min_length=1)
    image: Optional[str] = None  # data URL or bare base64 to edit


class ImageResponse(CamelModel):
    image: str


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------
class ChatStartRequest(CamelModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)


class PersonaSchema(CamelModel):
    name: str
    greeting: str


class ChatSessionResponse(CamelModel):
    session_id: str
    persona: PersonaSchema


class ChatMessageRequest(CamelModel):
    message: str = Field(..., min_length=1)


class ChatReplyResponse(CamelModel):
    reply: str


# ---------------------------------------------------------------------------
# Session persistence
# ---------------------------------------------------------------------------
class WishlistToggleResponse(CamelModel):
    saved: bool
    wishlist: list[BookSchema]


class ProgressSchema(ProgressRecord):
    last_updated: str


class ProgressUpdateRequest(CamelModel):
    current_page: Optional[int] = Field(None, ge=0)
    total_pages: Optional[int] = Field(None, ge=1)


class TrainingSignalRequest(CamelModel):
    book_title: str = Field(..., min_length=1)
    book_author: str = "User Input"
    feedback_type: Literal["positive", "negative"] = "positive"
    context_note: str = Field(..., min_length=1)
    atmospheric_weight: int = Field(50, ge=0, le=100)

    def to_entity(self) -> TrainingSignal:
        return TrainingSignal(**self.model_dump())


class TrainingSignalSchema(TrainingSignalRecord):
    pass


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------
class WeatherResponse(CamelModel):
    weather: WeatherType
    temperature: float
    is_day: bool
    location_name: Optional[str] = None
