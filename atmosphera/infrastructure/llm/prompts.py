"""Structured, reusable prompt templates and response schemas.

Every AI call renders one of the :class:`PromptTemplate` objects below, and
structured calls pair it with a JSON schema sent to the provider as the
declared response format.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PromptTemplate:
    """A reusable prompt template with named placeholders.

    Usage::

        messages = RECOMMENDATION_PROMPT.render(weather="Clear Night", ...)
    """

    name: str
    system: str
    user: str
    description: str = ""
    version: str = "1.0"
    tags: list[str] = field(default_factory=list)

    def render(self, **kwargs: Any) -> list[dict[str, str]]:
        """Return an OpenAI-style messages list with placeholders filled."""
        return [
            {"role": "system", "content": self.system.format(**kwargs)},
            {"role": "user", "content": self.user.format(**kwargs)},
        ]

    def render_flat(self, **kwargs: Any) -> str:
        """Return a single-string prompt (system + user) for simpler APIs."""
        sys_text = self.system.format(**kwargs)
        usr_text = self.user.format(**kwargs)
        return f"{sys_text}\n\n{usr_text}"


def _string(**extra: Any) -> dict[str, Any]:
    return {"type": "string", **extra}


def _nullable_string() -> dict[str, Any]:
    return {"type": ["string", "null"]}


def _object(properties: dict[str, Any]) -> dict[str, Any]:
    # strict structured output: every property listed, nothing extra
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def json_schema_format(name: str, schema: dict[str, Any]) -> dict[str, Any]:
    """Wrap *schema* as a chat-completions ``response_format``."""
    return {"type": "json_schema", "json_schema": {"name": name, "schema": schema, "strict": True}}


# =========================================================================
# Response schemas
# =========================================================================

BOOK_SCHEMA = _object(
    {
        "title": _string(),
        "author": _string(),
        "isbn": _nullable_string(),
        "genre": _string(),
        "description": _string(description="Max 300 characters, crisp vibe."),
        "reasoning": _string(),
        "moodColor": _string(description="Hex color such as #1e293b"),
        "excerpt": _string(),
        "ebookUrl": _nullable_string(),
        "moviePairing": _nullable_string(),
        "musicPairing": _nullable_string(),
        "foodPairing": _nullable_string(),
        "language": _nullable_string(),
        "atmosphericRole": _string(),
        "sectionFit": _string(),
        "momentFit": _string(),
        "cognitiveEffort": _string(enum=["Light", "Moderate", "Demanding"]),
    }
)

RECOMMENDATION_SCHEMA = _object(
    {
        "heading": _string(),
        "insight": _string(),
        "antiRecommendation": _string(),
        "confidence": _string(enum=["High", "Medium", "Experimental"]),
        "books": {"type": "array", "items": BOOK_SCHEMA},
    }
)

PERSONA_SCHEMA = _object(
    {"name": _string(), "greeting": _string(), "systemInstruction": _string()}
)

INTELLIGENCE_SCHEMA = _object(
    {"insight": _string(), "additionalDiscoveryQuery": _nullable_string()}
)

ENHANCED_DETAILS_SCHEMA = _object(
    {
        "literaryIdentity": _string(),
        "whyFitsNow": {"type": "array", "items": _string()},
        "commitment": _object(
            {
                "attention": _string(enum=["low", "moderate", "high"]),
                "weight": _string(enum=["light", "moderate", "heavy"]),
                "pacing": _string(enum=["slow", "steady", "fast"]),
            }
        ),
        "emotionalArc": _string(),
        "readWhen": {"type": "array", "items": _string()},
        "avoidWhen": {"type": "array", "items": _string()},
        "microSynopsis": _string(),
        "atmosphericProfile": _object(
            {"tone": _string(), "imagery": _string(), "bestTime": _string()}
        ),
        "readDifferentlyInsight": _string(),
        "sectionJustification": _string(),
        "deepArchive": _object({"fullSynopsis": _string(), "authorBackground": _string()}),
    }
)


# =========================================================================
# Prompts
# =========================================================================

RECOMMENDATION_PROMPT = PromptTemplate(
    name="book_recommendations",
    description="Curate books for the questionnaire answers.",
    version="2.0",
    tags=["curation", "recommendation"],
    system=(
        "You are Atmosphera, an elite book recommendation engine.\n"
        "STRICT CONSTRAINT: BREVITY IS GOD. Every description is 5-6 short lines, "
        "at most 300 characters. No disclaimers, no meta-commentary.\n"
        "Use Markov chain genre switching: the genre of each book must differ "
        "from the genre of the book right before it.\n"
        "Write every field in {language}."
    ),
    user=(
        "ENVIRONMENTAL INPUT:\n"
        "- Weather: {weather}\n"
        "- Mood: {mood}\n"
        "- Energy: {pace}\n"
        "- Setting: {setting}\n"
        "- Reader age: {age}\n"
        "- Preferred format: {preferred_format}\n"
        "- Interest: {interest}\n\n"
        "Return a JSON object with a cinematic heading, one crisp insight phrase, "
        "an anti-recommendation, your confidence, and exactly {count} books. "
        "Include film, music and food pairings where they fit."
    ),
)

LIVE_INSIGHT_PROMPT = PromptTemplate(
    name="live_insight",
    description="Web-grounded snapshot of what readers say about a book today.",
    tags=["grounding", "search"],
    system=(
        "You are Atmosphera's research librarian. Use web search. "
        "Answer in at most 4 crisp sentences."
    ),
    user=(
        'What is the current conversation around "{title}" by {author}? '
        "Mention recent adaptations, awards or news if any."
    ),
)

ENHANCED_DETAILS_PROMPT = PromptTemplate(
    name="enhanced_details",
    description="Structured literary metadata for the detail view.",
    tags=["metadata"],
    system=(
        "You are Atmosphera. Generate crisp book metadata. Every field is short. "
        "Synopses are 5-6 sentences max. No fluff, no disclaimers."
    ),
    user='Metadata for "{title}" by {author}.',
)

PERSONA_PROMPT = PromptTemplate(
    name="character_persona",
    description="Pick a character from a book to role-play in chat.",
    tags=["chat", "persona"],
    system="You design role-play personas for characters from published novels.",
    user=(
        'Identify a character from "{title}" by {author}. Return name, greeting and '
        "systemInstruction. Keep the greeting very short (max 12 words)."
    ),
)

CHAT_STYLE_SUFFIX = " Be crisp. Maximum 2 short sentences per response."

TRENDING_PROMPT = PromptTemplate(
    name="web_trending",
    description="Grounded search for globally trending books.",
    tags=["grounding", "trending"],
    system="You track the global book market using web search.",
    user=(
        "Identify the top 8 most trending/popular books globally right now for "
        "{language} readers. Return exactly 'Title by Author' per line. No extra chat."
    ),
)

INTELLIGENCE_PROMPT = PromptTemplate(
    name="atmospheric_intelligence",
    description="Refine the library around the current session.",
    tags=["refinement", "discovery"],
    system=(
        "You are Atmosphera's curation intelligence. Read the session and suggest "
        "one short insight plus, when useful, one catalog search query that would "
        "add a shelf the reader is missing. Use null when no shelf is needed."
    ),
    user=(
        "Weather: {weather}; mood: {mood}; pace: {pace}; setting: {setting}.\n"
        "Recently viewed: {history}\n"
        "Current recommendations: {recommendations}\n"
        "Existing shelves: {shelves}"
    ),
)

LIBRARIAN_INSTRUCTION = (
    "You are Atmosphera's librarian. Help users find books. "
    "Keep responses short and crisp."
)
