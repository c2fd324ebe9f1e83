"""Input sanitization and response parsing for the AI client."""

import json
import logging
import re
from typing import Any, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError

from atmosphera.domain.entities import (
    AtmosphericIntelligence,
    Book,
    CharacterPersona,
    RecommendationResult,
)
from atmosphera.infrastructure.catalog.palette import mood_color_for
from atmosphera.infrastructure.llm.errors import ParseError

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 300
MAX_DESCRIPTION_CHARS = 300

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_FENCE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")
_DISCLAIMER = re.compile(r"DISCLAIMER:.*?novel\.", re.IGNORECASE | re.DOTALL)

M = TypeVar("M", bound=BaseModel)


def sanitize_input(text: Optional[str], limit: int = MAX_INPUT_CHARS) -> str:
    """Drop control characters and cap the length of user text bound for a prompt."""
    if not text:
        return ""
    return _CONTROL_CHARS.sub("", text)[:limit]


def strip_code_fences(text: str) -> str:
    match = _FENCE.match(text or "")
    return match.group(1).strip() if match else (text or "").strip()


def parse_json(text: Optional[str]) -> Any:
    """Decode a model response, tolerating a surrounding code fence."""
    if not text or not text.strip():
        raise ParseError("Empty response from model")
    try:
        return json.loads(strip_code_fences(text))
    except json.JSONDecodeError as exc:
        logger.warning("Model returned undecodable JSON (%d chars): %s", len(text), exc)
        raise ParseError(f"Invalid JSON from model: {exc}") from exc


def parse_model(text: Optional[str], model: type[M]) -> M:
    data = parse_json(text)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"Response did not match {model.__name__}: {exc}") from exc


def truncate_description(text: Optional[str], limit: int = MAX_DESCRIPTION_CHARS) -> str:
    if not text:
        return "No description available."
    clean = _DISCLAIMER.sub("", text).strip()
    if len(clean) <= limit:
        return clean
    return clean[:limit].strip() + "..."


def normalize_color(value: Optional[str], title: str) -> str:
    match = _HEX_COLOR.match((value or "").strip())
    if not match:
        return mood_color_for(title)
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return f"#{digits.lower()}"


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------
class BookPayload(BaseModel):
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    isbn: Optional[str] = None
    genre: str
    description: str
    reasoning: str
    moodColor: str
    excerpt: str
    ebookUrl: Optional[str] = None
    moviePairing: Optional[str] = None
    musicPairing: Optional[str] = None
    foodPairing: Optional[str] = None
    language: Optional[str] = None
    atmosphericRole: Optional[str] = None
    sectionFit: Optional[str] = None
    momentFit: Optional[str] = None
    cognitiveEffort: Optional[Literal["Light", "Moderate", "Demanding"]] = None

    def to_book(self) -> Book:
        title = self.title.strip()
        author = self.author.strip()
        return Book(
            title=title,
            author=author,
            isbn=(self.isbn or "").strip() or None,
            genre=self.genre.strip() or "General",
            description=truncate_description(self.description),
            reasoning=self.reasoning.strip(),
            mood_color=normalize_color(self.moodColor, title),
            excerpt=self.excerpt.strip(),
            ebook_url=self.ebookUrl or None,
            movie_pairing=self.moviePairing or None,
            music_pairing=self.musicPairing or None,
            food_pairing=self.foodPairing or None,
            language=self.language or None,
            atmospheric_role=self.atmosphericRole or None,
            section_fit=self.sectionFit or None,
            moment_fit=self.momentFit or None,
            cognitive_effort=self.cognitiveEffort,
        ).ensure_id()


class RecommendationPayload(BaseModel):
    heading: str
    insight: str
    antiRecommendation: str = ""
    confidence: Literal["High", "Medium", "Experimental"] = "Medium"
    books: list[BookPayload]


class PersonaPayload(BaseModel):
    name: str = Field(..., min_length=1)
    greeting: str = Field(..., min_length=1)
    systemInstruction: str = Field(..., min_length=1)


class IntelligencePayload(BaseModel):
    insight: str
    additionalDiscoveryQuery: Optional[str] = None


class CommitmentPayload(BaseModel):
    attention: Literal["low", "moderate", "high"]
    weight: Literal["light", "moderate", "heavy"]
    pacing: Literal["slow", "steady", "fast"]


class AtmosphericProfilePayload(BaseModel):
    tone: str
    imagery: str
    bestTime: str


class DeepArchivePayload(BaseModel):
    fullSynopsis: str
    authorBackground: str


class EnhancedDetailsPayload(BaseModel):
    literaryIdentity: str
    whyFitsNow: list[str]
    commitment: CommitmentPayload
    emotionalArc: str
    readWhen: list[str]
    avoidWhen: list[str]
    microSynopsis: str
    atmosphericProfile: AtmosphericProfilePayload
    readDifferentlyInsight: str
    sectionJustification: str
    deepArchive: DeepArchivePayload


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------
def parse_recommendations(text: Optional[str], count: int) -> RecommendationResult:
    """Parse and clean a recommendation response holding at least *count* books."""
    payload = parse_model(text, RecommendationPayload)
    if len(payload.books) < count:
        raise ParseError(f"Expected {count} books, model returned {len(payload.books)}")
    if len(payload.books) > count:
        logger.info("Model returned %d books; keeping %d", len(payload.books), count)
    return RecommendationResult(
        heading=payload.heading.strip(),
        insight=payload.insight.strip(),
        anti_recommendation=payload.antiRecommendation.strip(),
        confidence=payload.confidence,
        books=[b.to_book() for b in payload.books[:count]],
    )


def parse_persona(text: Optional[str]) -> CharacterPersona:
    payload = parse_model(text, PersonaPayload)
    return CharacterPersona(
        name=payload.name.strip(),
        greeting=payload.greeting.strip(),
        system_instruction=payload.systemInstruction.strip(),
    )


def parse_intelligence(text: Optional[str]) -> AtmosphericIntelligence:
    payload = parse_model(text, IntelligencePayload)
    query = sanitize_input(payload.additionalDiscoveryQuery).strip() or None
    return AtmosphericIntelligence(insight=payload.insight.strip(), additional_discovery_query=query)


def parse_enhanced_details(text: Optional[str]) -> dict[str, Any]:
    return parse_model(text, EnhancedDetailsPayload).model_dump()


def parse_trending_lines(text: Optional[str], limit: int = 6) -> list[str]:
    """Extract ``"Title by Author"`` lines from a free-text answer."""
    lines = []
    for raw in (text or "").splitlines():
        line = re.sub(r"^\s*(?:\d+[.)]|[-*•])\s*", "", raw).strip().strip("*").strip()
        if len(line) > 3 and (" by " in line.lower() or " - " in line):
            lines.append(line)
    return lines[:limit]
