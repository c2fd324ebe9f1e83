import pytest

from atmosphera.infrastructure.llm.services import MockAIService
from atmosphera.services.chat import ChatRegistry, ChatSessionNotFound


async def test_persona_is_frozen_per_session():
    registry = ChatRegistry(MockAIService())
    session_id, session = await registry.open("Frankenstein", "Mary Shelley")

    persona = session.persona
    await registry.send(session_id, "Are you the creature?")
    await registry.send(session_id, "Why?")

    assert registry.get(session_id).persona is persona
    assert [m.role for m in session.history] == ["model", "user", "model", "user", "model"]


async def test_oldest_session_is_evicted():
    registry = ChatRegistry(MockAIService(), max_sessions=2)
    first, _ = await registry.open("A", "a")
    await registry.open("B", "b")
    await registry.open("C", "c")

    assert len(registry) == 2
    with pytest.raises(ChatSessionNotFound):
        registry.get(first)


async def test_close_forgets_session():
    registry = ChatRegistry(MockAIService())
    session_id, _ = await registry.open("A", "a")
    registry.close(session_id)
    with pytest.raises(ChatSessionNotFound):
        await registry.send(session_id, "hello?")
