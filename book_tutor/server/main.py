"""Main application module for the book tutor.

This module bootstraps the FastAPI application with all necessary components.
"""

import json
import os
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Iterable, Optional

import uvicorn
from fastapi import FastAPI, Request
from openai import AsyncOpenAI
from sse_starlette.sse import EventSourceResponse

from ..bootstrap import (
    build_orchestrator,
    get_agent_settings,
    get_completion_provider,
    get_conversation_repository,
    get_library,
    get_openai_client,
)
from ..entities import (
    CONTENT_EVENT,
    ERROR_EVENT,
    HEADER_CORRELATION_ID,
    METADATA_EVENT,
    SSE_RESPONSE_HEADERS,
    AgentSettings,
    BookInfo,
    Chapter,
    ChatRequest,
    ChatResponse,
    ConversationIdentity,
    ICompletionProvider,
    ServiceConfig,
)
from ..entities.headers import CONTENT_TYPE_EVENT_STREAM, CORRELATION_ID_LENGTH
from ..errors import BookNotFoundError, StreamTransportError
from ..repositories import BaseConversationRepository, BaseLibrary
from ..services import ConversationOrchestrator, ConversationSessions, Summarizer
from ..structured_logging import CorrelationContext, configure_structlog, get_logger
from .error_handlers import ErrorHandler

logger = get_logger("MAIN")

SSE_RETRY_MS = 5000


def create_lifespan(api_instance: "TutorServiceAPI") -> Any:
    """Create a lifespan context manager for the API instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Application starting up...")
        yield
        logger.info("Application shutting down...")
        await api_instance.shutdown()

    return lifespan


class TutorServiceAPI:
    """HTTP front end of the tutor: one orchestrator per (student, book) conversation."""

    def __init__(
        self,
        service_config: Optional[ServiceConfig] = None,
        provider: Optional[ICompletionProvider] = None,
        repository: Optional[BaseConversationRepository] = None,
        library: Optional[BaseLibrary] = None,
    ) -> None:
        """Initialize the tutor service.

        Args:
            service_config: Optional service configuration. If not provided, will be loaded from environment.
            provider: Completion provider; an OpenAI client is created when omitted.
            repository: Conversation store; chosen from the configuration when omitted.
            library: Book lookup; an empty in-memory library when omitted.
        """
        self.service_config = service_config or ServiceConfig()
        self.client: Optional[AsyncOpenAI] = None
        if provider is None:
            self.client = get_openai_client(self.service_config)
            provider = get_completion_provider(self.client)
        self.provider = provider
        self.repository = repository or get_conversation_repository(self.service_config)
        self.library = library or get_library(self.service_config)
        self.sessions = ConversationSessions(self._create_orchestrator, max_sessions=self.service_config.max_sessions)
        self._settings: Optional[AgentSettings] = None

        logger.info(
            "Booting with config",
            environment=self.service_config.environment,
            database_path=self.service_config.database_path,
            openai_apikey="sk" if self.service_config.openai_api_key else None,
            event_channel_size=self.service_config.event_channel_size,
        )

        self.app = FastAPI(title="Book Tutor", lifespan=create_lifespan(self))
        self._setup_routes()

    async def shutdown(self) -> None:
        await self.sessions.close()
        await self.repository.close()
        if self.client is not None:
            await self.client.close()

    async def register_book(self, book: BookInfo, chapters: Iterable[Chapter]) -> None:
        """Add a book to the library, generating plans for chapters that have none."""
        summarizer = Summarizer(self.provider, (await self._agent_settings()).ai_model)
        planned = await summarizer.plan_chapters(chapters)
        self.library.add_book(book, planned)
        logger.info("Book registered", book_id=book.id, title=book.title, chapters=len(planned))

    async def _agent_settings(self) -> AgentSettings:
        if self._settings is None:
            self._settings = await get_agent_settings(self.repository, self.service_config)
        return self._settings

    async def _create_orchestrator(self, identity: ConversationIdentity) -> ConversationOrchestrator:
        return await build_orchestrator(
            identity,
            self.provider,
            self.repository,
            self.library,
            await self._agent_settings(),
            channel_size=self.service_config.event_channel_size,
        )

    async def _format_sse_events(
        self, orchestrator: ConversationOrchestrator, message: str, correlation_id: str
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Format orchestrator events as SSE events."""
        truncated_id = correlation_id[:CORRELATION_ID_LENGTH]
        start_time = time.time()
        event_count = 0

        with CorrelationContext(correlation_id):
            try:
                async for event in orchestrator.stream_input(message):
                    event_count += 1
                    yield {
                        "event": event.type,
                        "data": event.model_dump_json(),
                        "id": f"{truncated_id}_{event.type}_{event_count}",
                        "retry": SSE_RETRY_MS,
                    }
                yield {
                    "event": METADATA_EVENT,
                    "data": json.dumps(
                        {
                            "correlation_id": truncated_id,
                            "elapsed_time_seconds": round(time.time() - start_time, 3),
                            "event_count": event_count,
                        }
                    ),
                    "id": f"{truncated_id}_metadata",
                }
            except Exception as e:
                logger.error(
                    "Error in SSE stream",
                    error=str(e),
                    error_type=type(e).__name__,
                    student_id=orchestrator.identity.student_id,
                    book_id=orchestrator.identity.book_id,
                )
                yield {
                    "event": ERROR_EVENT,
                    "data": json.dumps(
                        {
                            "error": str(e),
                            "error_type": type(e).__name__,
                            "correlation_id": truncated_id,
                        }
                    ),
                    "id": f"{truncated_id}_error",
                }

    def _setup_routes(self) -> None:
        @self.app.get("/")
        async def root() -> dict[str, str]:
            return {"message": "Book tutor is running"}

        @self.app.post("/chat", response_model=ChatResponse)
        async def chat(request: ChatRequest, http_request: Request) -> ChatResponse | EventSourceResponse:
            """Send a student message to the tutor.

            Streams events as Server-Sent Events when the client accepts them,
            otherwise returns every event once the tutor has finished.
            """
            with CorrelationContext() as correlation_id:
                identity = ConversationIdentity(student_id=request.student_id, book_id=request.book_id)
                context = {"student_id": identity.student_id, "book_id": identity.book_id}
                try:
                    orchestrator = await self.sessions.get(identity)
                except BookNotFoundError as err:
                    raise ErrorHandler.handle_not_found(err, correlation_id, **context)

                if CONTENT_TYPE_EVENT_STREAM in http_request.headers.get("accept", ""):
                    logger.info("Processing streaming chat request", message_length=len(request.message), **context)
                    return EventSourceResponse(
                        self._format_sse_events(orchestrator, request.message, correlation_id),
                        headers={HEADER_CORRELATION_ID: correlation_id, **SSE_RESPONSE_HEADERS},
                    )

                events = []
                try:
                    async for event in orchestrator.stream_input(request.message):
                        events.append(event)
                except StreamTransportError as err:
                    raise ErrorHandler.handle_transport_error(err, "stream completion", correlation_id, **context)
                except Exception as err:  # noqa: BLE001
                    raise ErrorHandler.handle_unexpected_error(err, "chat", correlation_id, **context)

                content = "".join(event.text for event in events if event.type == CONTENT_EVENT)  # type: ignore[union-attr]
                logger.debug("Chat processing completed", event_count=len(events), **context)
                return ChatResponse(content=content, events=[event.model_dump() for event in events])


def get_app() -> FastAPI:
    """Return a fully configured FastAPI application."""
    configure_structlog()
    return TutorServiceAPI().app


def run() -> None:
    """Serve the application with uvicorn; HOST and PORT come from the environment."""
    uvicorn.run(
        "book_tutor.server.main:get_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )


__all__ = ["get_app", "run", "TutorServiceAPI"]


if __name__ == "__main__":
    run()
