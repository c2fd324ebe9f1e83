"""Generative-AI service implementations.

Each service consumes the structured :class:`PromptTemplate` objects defined in
``atmosphera.infrastructure.llm.prompts``. Provider failures are classified
into the taxonomy in ``atmosphera.infrastructure.llm.errors`` and transient
ones are retried by :func:`with_retry`; parsing happens after the retry
boundary, so a malformed answer is never retried.
"""

import asyncio
import base64
import hashlib
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import numpy as np
import openai

from atmosphera.domain.entities import (
    AtmosphericIntelligence,
    Book,
    CharacterPersona,
    ChatMessage,
    LiveInsight,
    RecommendationResult,
    UserPreferences,
    WebSource,
)
from atmosphera.domain.repositories import IAIService, IChatSession, ILiveSession
from atmosphera.infrastructure.catalog.palette import mood_color_for
from atmosphera.infrastructure.llm.errors import (
    AIServiceError,
    MissingKeyError,
    ParseError,
    SafetyRejectedError,
    classify_error,
)
from atmosphera.infrastructure.llm.live import AudioCallback, CloseCallback, LiveSession
from atmosphera.infrastructure.llm.parsing import (
    parse_enhanced_details,
    parse_intelligence,
    parse_persona,
    parse_recommendations,
    parse_trending_lines,
    sanitize_input,
)
from atmosphera.infrastructure.llm.prompts import (
    CHAT_STYLE_SUFFIX,
    ENHANCED_DETAILS_PROMPT,
    ENHANCED_DETAILS_SCHEMA,
    INTELLIGENCE_PROMPT,
    INTELLIGENCE_SCHEMA,
    LIBRARIAN_INSTRUCTION,
    LIVE_INSIGHT_PROMPT,
    PERSONA_PROMPT,
    PERSONA_SCHEMA,
    RECOMMENDATION_PROMPT,
    RECOMMENDATION_SCHEMA,
    TRENDING_PROMPT,
    PromptTemplate,
    json_schema_format,
)
from atmosphera.infrastructure.llm.retry import with_retry
from atmosphera.infrastructure.media.audio import (
    AudioClip,
    PlaybackScheduler,
    encode_pcm16,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_SOURCES = 3
MAX_SPEECH_CHARS = 4096
MAX_IMAGE_PROMPT_CHARS = 1000


def recommendation_variables(prefs: UserPreferences, count: int) -> dict[str, Any]:
    def label(value: Any) -> str:
        return getattr(value, "value", value) or "Surprise me"

    return {
        "weather": label(prefs.weather),
        "mood": label(prefs.mood),
        "pace": label(prefs.pace),
        "setting": label(prefs.setting),
        "age": prefs.age or "Adult",
        "language": prefs.language or "English",
        "preferred_format": prefs.preferred_format,
        "interest": sanitize_input(prefs.specific_interest) or "Best possible collection",
        "count": count,
    }


def strip_data_url(image: str) -> str:
    return image.split(",", 1)[1] if "," in image else image


def to_data_url(b64_png: str) -> str:
    return f"data:image/png;base64,{b64_png}"


def extract_sources(response: Any, limit: int = MAX_SOURCES) -> list[WebSource]:
    """Collect distinct ``url_citation`` annotations from a Responses API result."""
    seen: set[str] = set()
    sources: list[WebSource] = []
    for item in getattr(response, "output", None) or []:
        for part in getattr(item, "content", None) or []:
            for annotation in getattr(part, "annotations", None) or []:
                if getattr(annotation, "type", "") != "url_citation":
                    continue
                url = getattr(annotation, "url", None)
                if not url or url in seen:
                    continue
                seen.add(url)
                sources.append(WebSource(uri=url, title=getattr(annotation, "title", None) or url))
                if len(sources) >= limit:
                    return sources
    return sources


# ---------------------------------------------------------------------------
# Mock (development / testing)
# ---------------------------------------------------------------------------
_MOCK_SHELF = [
    ("The Haunting of Hill House", "Shirley Jackson", "Gothic Horror"),
    ("Piranesi", "Susanna Clarke", "Fantasy"),
    ("Lincoln in the Bardo", "George Saunders", "Literary Fiction"),
    ("The Remains of the Day", "Kazuo Ishiguro", "Historical Fiction"),
    ("Station Eleven", "Emily St. John Mandel", "Science Fiction"),
    ("Rebecca", "Daphne du Maurier", "Mystery"),
    ("A Psalm for the Wild-Built", "Becky Chambers", "Cozy Sci-Fi"),
    ("The Night Circus", "Erin Morgenstern", "Magical Realism"),
]

# 1x1 transparent PNG
_MOCK_PNG = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class MockChatSession(IChatSession):

    def __init__(self, persona: CharacterPersona):
        self._persona = persona
        self.history: list[ChatMessage] = [ChatMessage(role="model", text=persona.greeting)]
        self._lock = asyncio.Lock()

    @property
    def persona(self) -> CharacterPersona:
        return self._persona

    async def send(self, message: str) -> str:
        async with self._lock:
            text = sanitize_input(message)
            reply = f"{self._persona.name} considers your words: \"{text[:60]}\"."
            self.history.append(ChatMessage(role="user", text=text))
            self.history.append(ChatMessage(role="model", text=reply))
            return reply


class MockLiveSession(ILiveSession):
    """Echoes microphone frames back as scheduled playback."""

    def __init__(self, on_audio: AudioCallback, on_close: CloseCallback):
        self._on_audio = on_audio
        self._on_close = on_close
        self.scheduler = PlaybackScheduler()
        self._clock = 0.0
        self._closed = False

    async def send_audio(self, pcm16: bytes) -> None:
        if self._closed:
            return
        await self._on_audio(self.scheduler.schedule(AudioClip(pcm=pcm16), self._clock))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._on_close()


class MockAIService(IAIService):
    """Returns deterministic results: useful for tests and offline dev."""

    def __init__(self, recommendation_count: int = 4):
        self.recommendation_count = recommendation_count

    async def get_book_recommendations(self, prefs: UserPreferences) -> RecommendationResult:
        variables = recommendation_variables(prefs, self.recommendation_count)
        prompt = RECOMMENDATION_PROMPT.render_flat(**variables)
        logger.debug("MockAI recommendation prompt (%d chars)", len(prompt))

        seed = int(hashlib.md5(prompt.encode()).hexdigest(), 16)
        start = seed % len(_MOCK_SHELF)
        picks = [_MOCK_SHELF[(start + i) % len(_MOCK_SHELF)] for i in range(self.recommendation_count)]
        books = [
            Book(
                title=title,
                author=author,
                genre=genre,
                description=f"A {variables['mood'].lower()} read for {variables['weather'].lower()} days.",
                reasoning=f"Matches a {variables['pace'].lower()} mood around {variables['interest']}.",
                mood_color=mood_color_for(title),
                excerpt=f"The first line of {title}.",
                language=variables["language"],
            ).ensure_id()
            for title, author, genre in picks
        ]
        return RecommendationResult(
            heading=f"{variables['weather']} Reading",
            insight=f"Stories tuned to a {variables['mood'].lower()} mind.",
            anti_recommendation="Skip anything loud today.",
            confidence="Experimental",
            books=books,
        )

    async def get_live_insights(self, book: Book) -> LiveInsight:
        return LiveInsight(
            text=f"Readers keep returning to {book.title} by {book.author}.", sources=[]
        )

    async def get_enhanced_details(self, book: Book) -> dict[str, Any]:
        return {
            "literaryIdentity": f"{book.genre} by {book.author}",
            "whyFitsNow": [book.reasoning or "It suits the moment."],
            "commitment": {"attention": "moderate", "weight": "moderate", "pacing": "steady"},
            "emotionalArc": "Quiet unease into warmth.",
            "readWhen": ["a slow evening"],
            "avoidWhen": ["you need to sleep early"],
            "microSynopsis": book.description or book.title,
            "atmosphericProfile": {"tone": "hushed", "imagery": "lamplight", "bestTime": "night"},
            "readDifferentlyInsight": "Read the last chapter aloud.",
            "sectionJustification": "Curated for the current atmosphere.",
            "deepArchive": {"fullSynopsis": book.description, "authorBackground": book.author},
        }

    async def get_character_persona(self, title: str, author: str) -> CharacterPersona:
        prompt = PERSONA_PROMPT.render_flat(title=sanitize_input(title), author=sanitize_input(author))
        logger.debug("MockAI persona prompt (%d chars)", len(prompt))
        return CharacterPersona(
            name=f"The Narrator of {title}",
            greeting="You found me between the pages.",
            system_instruction=f"You are the narrator of {title} by {author}. Stay in character.",
        )

    def create_chat_session(self, persona: CharacterPersona) -> IChatSession:
        return MockChatSession(persona)

    async def generate_mood_image(self, prompt: str) -> str:
        return to_data_url(_MOCK_PNG)

    async def edit_mood_image(self, image: str, prompt: str) -> str:
        if not strip_data_url(image):
            raise ParseError("No imagery found.")
        return to_data_url(_MOCK_PNG)

    async def generate_audio_preview(self, text: str) -> AudioClip:
        # quiet 220 Hz tone, a tenth of a second per word
        seconds = max(0.1, 0.1 * len(sanitize_input(text, MAX_SPEECH_CHARS).split()))
        t = np.arange(int(seconds * 24000)) / 24000.0
        return AudioClip(pcm=encode_pcm16(0.1 * np.sin(2 * np.pi * 220.0 * t)))

    async def fetch_trending_titles(self, language: Optional[str] = None) -> list[str]:
        return [f"{title} by {author}" for title, author, _ in _MOCK_SHELF[:6]]

    async def get_atmospheric_intelligence(
        self,
        prefs: UserPreferences,
        history: Sequence[str],
        recommendations: Sequence[Book],
        shelf_titles: Sequence[str],
    ) -> AtmosphericIntelligence:
        interest = sanitize_input(prefs.specific_interest).strip()
        return AtmosphericIntelligence(
            insight=f"{len(recommendations)} picks tuned to the weather.",
            additional_discovery_query=f"subject:fiction {interest}" if interest else None,
        )

    async def connect_live_session(
        self, on_audio: AudioCallback, on_close: CloseCallback
    ) -> ILiveSession:
        return MockLiveSession(on_audio, on_close)


# ---------------------------------------------------------------------------
# OpenAI (remote API)
# ---------------------------------------------------------------------------
class OpenAIChatSession(IChatSession):
    """Multi-turn chat steered by a frozen persona.

    Turns are strictly sequential; a failed turn leaves the history untouched.
    """

    def __init__(self, service: "OpenAIService", persona: CharacterPersona):
        self._service = service
        self._persona = persona
        self._system = persona.system_instruction + CHAT_STYLE_SUFFIX
        self.history: list[ChatMessage] = [ChatMessage(role="model", text=persona.greeting)]
        self._lock = asyncio.Lock()

    @property
    def persona(self) -> CharacterPersona:
        return self._persona

    def _messages(self, text: str) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self._system}]
        for msg in self.history:
            messages.append(
                {"role": "assistant" if msg.role == "model" else "user", "content": msg.text}
            )
        messages.append({"role": "user", "content": text})
        return messages

    async def send(self, message: str) -> str:
        text = sanitize_input(message)
        async with self._lock:
            client = self._service.client
            messages = self._messages(text)
            response = await self._service.call(
                "chat",
                lambda: client.chat.completions.create(
                    model=self._service.text_model, messages=messages, temperature=0.8
                ),
            )
            reply = self._service.message_text(response)
            self.history.append(ChatMessage(role="user", text=text))
            self.history.append(ChatMessage(role="model", text=reply))
            return reply


class OpenAIService(IAIService):
    """OpenAI-backed provider.

    Requires ``ATMOSPHERA_AI_API_KEY``. Without it every operation raises
    :class:`MissingKeyError` before touching the network.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: Optional[str] = None,
        text_model: str = "gpt-4o-mini",
        search_model: str = "gpt-4o-mini",
        image_model: str = "gpt-image-1",
        tts_model: str = "gpt-4o-mini-tts",
        tts_voice: str = "coral",
        live_model: str = "gpt-4o-realtime-preview",
        recommendation_count: int = 4,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        client: Any = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url or None
        self.text_model = text_model
        self.search_model = search_model
        self.image_model = image_model
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self.live_model = live_model
        self.recommendation_count = recommendation_count
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._client = client
        self._sleep = sleep

    # -- internal helpers ---------------------------------------------------

    @property
    def client(self) -> Any:
        if not self.api_key:
            raise MissingKeyError("ATMOSPHERA_AI_API_KEY is not set")
        if self._client is None:
            # retries are ours; the SDK would otherwise retry 4xx/5xx itself
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key, base_url=self.base_url, max_retries=0
            )
        return self._client

    async def call(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        logger.info("OpenAI: %s", operation)
        try:
            return await with_retry(
                func, retries=self.max_retries, base_delay=self.backoff_seconds, sleep=self._sleep
            )
        except AIServiceError as exc:
            logger.error("OpenAI %s failed [%s]: %s", operation, exc.kind, exc)
            raise

    @staticmethod
    def message_text(response: Any) -> str:
        choice = response.choices[0]
        refusal = getattr(choice.message, "refusal", None)
        if refusal or choice.finish_reason == "content_filter":
            raise SafetyRejectedError(refusal or "Response blocked by content filter")
        return choice.message.content or ""

    async def _structured(
        self, operation: str, template: PromptTemplate, schema: dict[str, Any], **variables: Any
    ) -> str:
        client = self.client
        messages = template.render(**variables)
        response = await self.call(
            operation,
            lambda: client.chat.completions.create(
                model=self.text_model,
                messages=messages,
                response_format=json_schema_format(template.name, schema),
                temperature=0.9,
            ),
        )
        return self.message_text(response)

    async def _grounded(self, operation: str, template: PromptTemplate, **variables: Any) -> Any:
        client = self.client
        return await self.call(
            operation,
            lambda: client.responses.create(
                model=self.search_model,
                instructions=template.system.format(**variables),
                input=template.user.format(**variables),
                tools=[{"type": "web_search_preview"}],
            ),
        )

    # -- IAIService interface -----------------------------------------------

    async def get_book_recommendations(self, prefs: UserPreferences) -> RecommendationResult:
        variables = recommendation_variables(prefs, self.recommendation_count)
        text = await self._structured(
            "recommendations", RECOMMENDATION_PROMPT, RECOMMENDATION_SCHEMA, **variables
        )
        return parse_recommendations(text, self.recommendation_count)

    async def get_live_insights(self, book: Book) -> LiveInsight:
        response = await self._grounded(
            "live insights",
            LIVE_INSIGHT_PROMPT,
            title=sanitize_input(book.title),
            author=sanitize_input(book.author),
        )
        text = (getattr(response, "output_text", "") or "").strip()
        if not text:
            raise ParseError("Grounded search returned no text")
        return LiveInsight(text=text, sources=extract_sources(response))

    async def get_enhanced_details(self, book: Book) -> dict[str, Any]:
        text = await self._structured(
            "enhanced details",
            ENHANCED_DETAILS_PROMPT,
            ENHANCED_DETAILS_SCHEMA,
            title=sanitize_input(book.title),
            author=sanitize_input(book.author),
        )
        return parse_enhanced_details(text)

    async def get_character_persona(self, title: str, author: str) -> CharacterPersona:
        text = await self._structured(
            "persona",
            PERSONA_PROMPT,
            PERSONA_SCHEMA,
            title=sanitize_input(title),
            author=sanitize_input(author),
        )
        return parse_persona(text)

    def create_chat_session(self, persona: CharacterPersona) -> IChatSession:
        return OpenAIChatSession(self, persona)

    async def generate_mood_image(self, prompt: str) -> str:
        client = self.client
        text = sanitize_input(prompt, MAX_IMAGE_PROMPT_CHARS)
        response = await self.call(
            "image generation",
            lambda: client.images.generate(model=self.image_model, prompt=text, n=1),
        )
        return self._image_result(response)

    async def edit_mood_image(self, image: str, prompt: str) -> str:
        client = self.client
        text = sanitize_input(prompt, MAX_IMAGE_PROMPT_CHARS)
        try:
            raw = base64.b64decode(strip_data_url(image), validate=True)
        except ValueError as exc:
            raise ParseError("Source image is not valid base64") from exc
        response = await self.call(
            "image edit",
            lambda: client.images.edit(
                model=self.image_model, image=("mood.png", raw, "image/png"), prompt=text
            ),
        )
        return self._image_result(response)

    @staticmethod
    def _image_result(response: Any) -> str:
        for item in getattr(response, "data", None) or []:
            if getattr(item, "b64_json", None):
                return to_data_url(item.b64_json)
        raise ParseError("No imagery found.")

    async def generate_audio_preview(self, text: str) -> AudioClip:
        client = self.client
        speech = sanitize_input(text, MAX_SPEECH_CHARS)
        response = await self.call(
            "speech",
            lambda: client.audio.speech.create(
                model=self.tts_model, voice=self.tts_voice, input=speech, response_format="pcm"
            ),
        )
        pcm = response.content
        if not pcm:
            raise ParseError("Speech synthesis returned no audio")
        return AudioClip(pcm=pcm)

    async def fetch_trending_titles(self, language: Optional[str] = None) -> list[str]:
        response = await self._grounded(
            "web trending", TRENDING_PROMPT, language=sanitize_input(language) or "English"
        )
        return parse_trending_lines(getattr(response, "output_text", ""))

    async def get_atmospheric_intelligence(
        self,
        prefs: UserPreferences,
        history: Sequence[str],
        recommendations: Sequence[Book],
        shelf_titles: Sequence[str],
    ) -> AtmosphericIntelligence:
        variables = recommendation_variables(prefs, self.recommendation_count)
        text = await self._structured(
            "atmospheric intelligence",
            INTELLIGENCE_PROMPT,
            INTELLIGENCE_SCHEMA,
            weather=variables["weather"],
            mood=variables["mood"],
            pace=variables["pace"],
            setting=variables["setting"],
            history=", ".join(sanitize_input(h, 100) for h in history[-10:]) or "nothing yet",
            recommendations=", ".join(f"{b.title} ({b.genre})" for b in recommendations),
            shelves=", ".join(shelf_titles) or "none",
        )
        return parse_intelligence(text)

    async def connect_live_session(
        self, on_audio: AudioCallback, on_close: CloseCallback
    ) -> ILiveSession:
        manager = self.client.beta.realtime.connect(model=self.live_model)
        session = LiveSession(manager, on_audio, on_close, instructions=LIBRARIAN_INSTRUCTION)
        try:
            return await session.start()
        except Exception as exc:
            raise classify_error(exc) from exc
