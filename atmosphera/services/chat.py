"""In-character chat sessions, kept in process memory."""

import logging
import uuid
from collections import OrderedDict

from atmosphera.domain.repositories import IAIService, IChatSession

logger = logging.getLogger(__name__)

MAX_SESSIONS = 256


class ChatSessionNotFound(KeyError):
    pass


class ChatRegistry:
    """Open chat sessions by id; the oldest is evicted past ``max_sessions``."""

    def __init__(self, ai_service: IAIService, max_sessions: int = MAX_SESSIONS):
        self.ai_service = ai_service
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, IChatSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, title: str, author: str) -> tuple[str, IChatSession]:
        persona = await self.ai_service.get_character_persona(title, author)
        session = self.ai_service.create_chat_session(persona)
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted chat session %s", evicted)
        logger.info("Opened chat with '%s' (%s)", persona.name, session_id)
        return session_id, session

    def get(self, session_id: str) -> IChatSession:
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise ChatSessionNotFound(session_id) from None
        self._sessions.move_to_end(session_id)
        return session

    async def send(self, session_id: str, message: str) -> str:
        return await self.get(session_id).send(message)

    def close(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
