"""Shared test fixtures for the entire test suite."""

from unittest.mock import AsyncMock

import pytest
from fakes import BOOK, CHAPTERS, FailingRepository, FakeProvider

from book_tutor.entities import AgentSettings, ConversationIdentity, ServiceConfig
from book_tutor.processors import HistoryManager, ToolRegistry
from book_tutor.repositories import InMemoryConversationRepository, InMemoryLibrary
from book_tutor.services import ConversationOrchestrator
from book_tutor.tools import BookJumpTool, GetChapterTool


@pytest.fixture
def identity():
    return ConversationIdentity(student_id=7, book_id=BOOK.id)


@pytest.fixture
def repository():
    """Provide an empty in-memory conversation repository."""
    return InMemoryConversationRepository()


@pytest.fixture
def failing_repository():
    return FailingRepository()


@pytest.fixture
def library():
    """Provide a library holding one book with three chapters."""
    library = InMemoryLibrary()
    library.add_book(BOOK, CHAPTERS)
    return library


@pytest.fixture
def registry(library):
    return ToolRegistry([GetChapterTool(BOOK.id, library), BookJumpTool(BOOK.id, library)])


@pytest.fixture
def agent_settings():
    return AgentSettings(ai_model="test-model", token_budget=10_000, auto_save=None, max_tool_rounds=8)


@pytest.fixture
def history(identity, repository):
    """Provide an empty history with a large budget."""
    return HistoryManager(identity, repository, budget=10_000)


@pytest.fixture
def make_orchestrator(history, registry, agent_settings):
    """Build an orchestrator around a fake provider replaying ``turns``."""

    def factory(turns, **overrides) -> tuple[ConversationOrchestrator, FakeProvider]:
        provider = FakeProvider(turns)
        settings = agent_settings.model_copy(update=overrides)
        orchestrator = ConversationOrchestrator(provider, history, registry, settings, channel_size=8)
        return orchestrator, provider

    return factory


@pytest.fixture
def test_service_config():
    """Provide a test service configuration."""
    return ServiceConfig(
        environment="development",
        openai_api_key="sk-test",
        database_path=":memory:",
        ai_model="test-model",
    )


@pytest.fixture
def dummy_client():
    """Provide a dummy OpenAI client."""
    client = AsyncMock()
    client.close = AsyncMock()
    return client
