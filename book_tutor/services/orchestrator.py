"""The tutor's turn loop: stream a reply, run the tools it asks for, repeat."""

import asyncio
from enum import Enum
from typing import Any, AsyncGenerator, Optional

from ..entities import (
    STOP_REASON_MAX_TOOL_ROUNDS,
    AgentSettings,
    ContentEvent,
    ConversationIdentity,
    ICompletionProvider,
    Message,
    RefusalEvent,
    ResponseEvent,
    Role,
    StoppedEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from ..errors import PersistenceError, StreamTransportError, TutorServiceError
from ..processors import AssembledTurn, HistoryManager, StreamAssembler, ToolRegistry
from ..processors.history_manager import unanswered_tool_calls
from ..structured_logging import get_logger, get_or_create_correlation_id
from .event_channel import EventChannel
from .summarizer import Summarizer

logger = get_logger("ORCHESTRATOR")


class OrchestratorState(str, Enum):
    AWAITING_USER_INPUT = "awaiting_user_input"
    STREAMING = "streaming"
    TOOL_DISPATCH = "tool_dispatch"
    IDLE = "idle"


class ConversationOrchestrator:
    """Drives one (student, book) conversation with the completion provider.

    Each user input runs the loop ``STREAMING -> (TOOL_DISPATCH -> STREAMING)*``
    until the assistant answers without tool calls, or until
    ``settings.max_tool_rounds`` tool rounds have run. Inputs of the same
    conversation are serialized.
    """

    def __init__(
        self,
        provider: ICompletionProvider,
        history: HistoryManager,
        registry: ToolRegistry,
        settings: AgentSettings,
        channel_size: int = 64,
    ):
        self.provider = provider
        self.history = history
        self.registry = registry
        self.settings = settings
        self.channel_size = channel_size
        self.summarizer = Summarizer(provider, settings.ai_model)
        self.state = OrchestratorState.AWAITING_USER_INPUT
        self._input_lock = asyncio.Lock()

    @property
    def identity(self) -> ConversationIdentity:
        return self.history.identity

    @property
    def busy(self) -> bool:
        """True while an input is being processed or waiting for its turn."""
        return self._input_lock.locked()

    async def input(self, message: str | Message, channel: EventChannel) -> None:
        """Process one user message, sending progress events to ``channel``.

        Raises:
            StreamTransportError: the completion stream failed; the partial turn is discarded.
            ChannelClosedError: the consumer closed the channel.
        """
        if isinstance(message, str):
            message = Message.user(message)
        if message.role != Role.USER:
            raise ValueError(f"Expected a user message, got {message.role.value}")

        async with self._input_lock:
            correlation_id = get_or_create_correlation_id()
            context = {
                "student_id": self.identity.student_id,
                "book_id": self.identity.book_id,
                "correlation_id": correlation_id,
            }
            self._set_state(OrchestratorState.AWAITING_USER_INPUT)
            logger.info("Processing user input", message_length=len(message.content or ""), **context)
            try:
                await self.history.enforce_budget(reserve=self.history.estimator(message))
                await self._append([message])

                rounds = 0
                while True:
                    turn = await self._stream_turn(channel)
                    if turn.refusal:
                        await channel.send(RefusalEvent(text=turn.refusal))
                    await self._append(
                        [Message.assistant(content=turn.content, refusal=turn.refusal, tool_calls=list(turn.tool_calls))]
                    )
                    if not turn.tool_calls:
                        break

                    await self._dispatch_tools(turn, channel)
                    rounds += 1
                    if rounds >= self.settings.max_tool_rounds:
                        logger.warning("Tool round limit reached, stopping", rounds=rounds, **context)
                        await channel.send(StoppedEvent(reason=STOP_REASON_MAX_TOOL_ROUNDS, rounds=rounds))
                        break
                    # The tool round is a finished turn; the next request must fit the budget too
                    await self.history.enforce_budget()

                await self.history.enforce_budget()
                logger.info("User input completed", tool_rounds=rounds, token_count=self.history.token_count, **context)
            except BaseException as err:
                logger.error(
                    "User input aborted",
                    error_type=type(err).__name__,
                    error=str(err),
                    state=self.state.value,
                    **context,
                )
                await self._close_pending_tool_calls(err)
                await self.history.enforce_budget()
                raise
            finally:
                self._set_state(OrchestratorState.IDLE)

    async def stream_input(self, message: str | Message) -> AsyncGenerator[ResponseEvent, None]:
        """Process one user message and yield its events as they are produced.

        Leaving the iteration early closes the channel, which aborts the input
        at its next event.
        """
        channel = EventChannel(self.channel_size)

        async def produce() -> None:
            try:
                await self.input(message, channel)
            finally:
                await channel.finish()

        task = asyncio.create_task(produce())
        try:
            async for event in channel:
                yield event
        except BaseException:
            channel.close()
            task.add_done_callback(self._log_abandoned_input)
            raise
        channel.close()
        await task

    async def summarize(self, content: str, max_words: int, prompt: Optional[str] = None) -> str:
        return await self.summarizer.summarize(content, max_words, prompt)

    async def close(self) -> None:
        """Persist whatever history is still queued."""
        try:
            await self.history.flush()
        except PersistenceError as err:
            logger.warning("Could not flush history on close", error=str(err), student_id=self.identity.student_id)

    async def _stream_turn(self, channel: EventChannel) -> AssembledTurn:
        self._set_state(OrchestratorState.STREAMING)
        assembler = StreamAssembler()
        tools = self.registry.definitions() or None
        stream: Any = None
        try:
            stream = self.provider.stream(self.settings.ai_model, self.history.messages(), tools)
            async for fragment in stream:
                delta = assembler.feed(fragment)
                if delta:
                    await channel.send(ContentEvent(text=delta))
        except TutorServiceError:
            raise
        except Exception as err:
            raise StreamTransportError(f"Completion stream failed: {err}") from err
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return assembler.finalize()

    async def _dispatch_tools(self, turn: AssembledTurn, channel: EventChannel) -> None:
        self._set_state(OrchestratorState.TOOL_DISPATCH)
        for invocation in turn.tool_calls:
            await channel.send(ToolCallEvent.from_invocation(invocation))
        results = await self.registry.call(turn.tool_calls)
        await self._append(results)
        for result in results:
            await channel.send(ToolResultEvent.from_message(result))

    async def _append(self, messages: list[Message]) -> None:
        try:
            await self.history.append_many(messages)
        except PersistenceError as err:
            # The history is still in memory; the next flush retries.
            logger.warning("Continuing without persisting history", error=str(err), pending=err.pending)

    async def _close_pending_tool_calls(self, err: BaseException) -> None:
        pending = unanswered_tool_calls(self.history.history())
        if not pending:
            return
        reason = type(err).__name__
        results = [Message.tool_result(call_id, f"Error: Tool call cancelled ({reason})") for call_id in pending]
        try:
            await self.history.append_many(results)
        except TutorServiceError as append_err:
            logger.warning("Could not record cancelled tool calls", error=str(append_err), pending=pending)

    def _set_state(self, state: OrchestratorState) -> None:
        if state != self.state:
            logger.debug("State transition", previous=self.state.value, state=state.value)
        self.state = state

    @staticmethod
    def _log_abandoned_input(task: "asyncio.Task[None]") -> None:
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            logger.info("Abandoned input finished", error_type=type(err).__name__, error=str(err))
