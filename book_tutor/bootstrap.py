"""Factory functions for creating and configuring application components with dependency injection."""

from openai import AsyncOpenAI

from .entities import AgentSettings, ConversationIdentity, ICompletionProvider, ServiceConfig
from .infrastructure import OpenAIClientFactory, OpenAICompletionProvider
from .processors import HistoryManager, ToolRegistry
from .prompts import build_system_prompt
from .repositories import (
    BaseConversationRepository,
    BaseLibrary,
    InMemoryConversationRepository,
    InMemoryLibrary,
    SQLiteConversationRepository,
)
from .services import ConversationOrchestrator
from .structured_logging import get_logger
from .tools import BookJumpTool, GetChapterTool

logger = get_logger("BOOTSTRAP")


def get_conversation_repository(config: ServiceConfig) -> BaseConversationRepository:
    """Create development or production conversation repository based on environment."""
    if config.is_development and config.database_path == ":memory:":
        logger.info("Using in-memory conversation repository for development")
        return InMemoryConversationRepository()
    logger.info("Using SQLite conversation repository", db_path=config.database_path)
    return SQLiteConversationRepository(config.database_path)


def get_library(config: ServiceConfig) -> BaseLibrary:
    """Books are registered by the host application on the returned library."""
    logger.info("Using in-memory library")
    return InMemoryLibrary()


def get_openai_client(service_config: ServiceConfig) -> AsyncOpenAI:
    logger.info("Creating OpenAI client")
    return OpenAIClientFactory.create_from_config(service_config)


def get_completion_provider(client: AsyncOpenAI) -> ICompletionProvider:
    return OpenAICompletionProvider(client)


async def get_agent_settings(repository: BaseConversationRepository, config: ServiceConfig) -> AgentSettings:
    """Read agent settings from storage, falling back to the service defaults."""
    settings = await repository.read_settings()
    if settings is None:
        logger.info("No stored agent settings, using service defaults")
        return config.default_agent_settings()
    return settings


def get_tool_registry(book_id: int, library: BaseLibrary) -> ToolRegistry:
    return ToolRegistry([GetChapterTool(book_id, library), BookJumpTool(book_id, library)])


async def build_orchestrator(
    identity: ConversationIdentity,
    provider: ICompletionProvider,
    repository: BaseConversationRepository,
    library: BaseLibrary,
    settings: AgentSettings,
    channel_size: int = 64,
) -> ConversationOrchestrator:
    """Create the orchestrator of one conversation, restoring its stored history."""
    book = await library.get_book_info(identity.book_id)
    history = await HistoryManager.load(
        identity,
        repository,
        budget=settings.token_budget,
        auto_save_threshold=settings.auto_save,
        system_prompt=build_system_prompt(book),
    )
    registry = get_tool_registry(identity.book_id, library)
    logger.info(
        "Creating conversation orchestrator",
        student_id=identity.student_id,
        book_id=identity.book_id,
        model=settings.ai_model,
        tools=registry.names,
    )
    return ConversationOrchestrator(provider, history, registry, settings, channel_size=channel_size)
