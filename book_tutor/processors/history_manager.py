"""Bounded, persisted message history for one conversation."""

import asyncio
import json
import math
from typing import Any, Callable, Iterable, Optional, Sequence

from ..entities import ConversationIdentity, Message, MessageRecord, Role
from ..errors import InconsistentHistoryError, PersistenceError
from ..repositories import BaseConversationRepository
from ..structured_logging import get_logger

logger = get_logger("HISTORY_MANAGER")

TokenEstimator = Callable[[Message], int]

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4


def approximate_tokens(message: Message) -> int:
    """Estimate the provider-side size of a message from its serialized length."""
    serialized = json.dumps(message.to_provider_format(), ensure_ascii=False)
    return math.ceil(len(serialized) / CHARS_PER_TOKEN) + MESSAGE_OVERHEAD_TOKENS


def unanswered_tool_calls(messages: Sequence[Message]) -> list[str]:
    """Return invocation ids of the latest assistant message that have no result yet."""
    answered = set()
    for message in reversed(messages):
        if message.role == Role.TOOL:
            answered.add(message.tool_call_id)
            continue
        if message.role == Role.ASSISTANT:
            return [call.id for call in message.tool_calls if call.id not in answered]
        return []
    return []


def check_consistency(history: Sequence[Message], message: Message) -> None:
    """Raise InconsistentHistoryError if ``message`` cannot follow ``history``."""
    if message.role == Role.SYSTEM:
        raise InconsistentHistoryError("System messages are pinned at load time and cannot be appended")
    if message.tool_calls and message.role != Role.ASSISTANT:
        raise InconsistentHistoryError(f"Only assistant messages may carry tool calls, got {message.role.value}")
    if message.tool_call_id is not None and message.role != Role.TOOL:
        raise InconsistentHistoryError(f"Only tool messages may answer a tool call, got {message.role.value}")

    pending = unanswered_tool_calls(history)
    if message.role != Role.TOOL:
        if pending:
            raise InconsistentHistoryError(
                f"Tool calls {pending} are still waiting for results", tool_call_id=pending[0]
            )
        ids = [call.id for call in message.tool_calls]
        if len(ids) != len(set(ids)):
            raise InconsistentHistoryError(f"Duplicate tool call ids in assistant message: {ids}")
        return

    if message.tool_call_id not in pending:
        raise InconsistentHistoryError(
            f"Tool result '{message.tool_call_id}' does not answer a pending call of the preceding assistant message",
            tool_call_id=message.tool_call_id,
        )


class HistoryManager:
    """Owns the ordered message log of one conversation.

    The log optionally starts with a pinned system message which is never
    evicted nor persisted. Appended messages are queued for persistence and
    flushed once ``auto_save_threshold`` of them are waiting.
    """

    def __init__(
        self,
        identity: ConversationIdentity,
        repository: BaseConversationRepository,
        budget: int,
        auto_save_threshold: Optional[int] = None,
        estimator: TokenEstimator = approximate_tokens,
        system_message: Optional[Message] = None,
        next_sequence: int = 0,
    ):
        if budget <= 0:
            raise ValueError("Token budget must be positive")
        self.identity = identity
        self.repository = repository
        self.budget = budget
        # None means flush on every append
        self.auto_save_threshold = auto_save_threshold or 1
        self.estimator = estimator

        self._messages: list[Message] = []
        self._sizes: list[int] = []
        self._pinned = 0
        self._token_count = 0
        self._unflushed: list[MessageRecord] = []
        self._next_sequence = next_sequence
        self._lock = asyncio.Lock()

        if system_message is not None:
            self._push(system_message)
            self._pinned = 1

    @classmethod
    async def load(
        cls,
        identity: ConversationIdentity,
        repository: BaseConversationRepository,
        budget: int,
        auto_save_threshold: Optional[int] = None,
        system_prompt: Optional[str] = None,
        estimator: TokenEstimator = approximate_tokens,
    ) -> "HistoryManager":
        """Restore the most recent stored messages of a conversation that fit the budget."""
        records = await repository.load_messages(identity)
        next_sequence = max((record.sequence for record in records), default=-1) + 1
        manager = cls(
            identity,
            repository,
            budget,
            auto_save_threshold=auto_save_threshold,
            estimator=estimator,
            system_message=Message.system(system_prompt) if system_prompt else None,
            next_sequence=next_sequence,
        )

        stored = [record.to_message() for record in records if record.role != Role.SYSTEM]
        stored = manager._drop_interrupted_turns(stored)
        kept = manager._fit_suffix(stored)
        for message in kept:
            manager._push(message)

        logger.info(
            "Conversation history loaded",
            student_id=identity.student_id,
            book_id=identity.book_id,
            stored=len(records),
            kept=len(kept),
            token_count=manager.token_count,
            budget=budget,
        )
        return manager

    @property
    def token_count(self) -> int:
        return self._token_count

    @property
    def unflushed_count(self) -> int:
        return len(self._unflushed)

    def __len__(self) -> int:
        return len(self._messages)

    def history(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def messages(self) -> list[dict[str, Any]]:
        """Snapshot of the log in provider request format, oldest first."""
        return [message.to_provider_format() for message in self._messages]

    async def append(self, message: Message) -> None:
        await self.append_many([message])

    async def append_many(self, messages: Iterable[Message]) -> None:
        """Append messages atomically, flushing once the auto-save threshold is reached.

        Raises:
            InconsistentHistoryError: a message breaks tool call pairing; nothing is appended.
            PersistenceError: the flush failed; the messages stay in memory and queued.
        """
        batch = list(messages)
        async with self._lock:
            staged = list(self._messages)
            for message in batch:
                check_consistency(staged, message)
                staged.append(message)

            for message in batch:
                self._push(message)
                self._unflushed.append(MessageRecord.from_message(message, self._next_sequence))
                self._next_sequence += 1

            if len(self._unflushed) >= self.auto_save_threshold:
                await self._flush_locked()

    async def flush(self) -> None:
        """Persist every queued message."""
        async with self._lock:
            await self._flush_locked()

    async def enforce_budget(self, reserve: int = 0) -> int:
        """Evict the oldest non-pinned messages until ``reserve`` more tokens fit.

        An assistant message is evicted together with the tool results answering
        it, so the retained log never starts with an orphan tool result.

        Returns:
            The number of evicted messages
        """
        async with self._lock:
            evicted = 0
            while self._token_count + reserve > self.budget and len(self._messages) > self._pinned:
                evicted += self._evict_oldest()
            while len(self._messages) > self._pinned and self._messages[self._pinned].role == Role.TOOL:
                evicted += self._evict_oldest()
            if evicted:
                logger.info(
                    "Evicted messages to respect token budget",
                    student_id=self.identity.student_id,
                    book_id=self.identity.book_id,
                    evicted=evicted,
                    token_count=self._token_count,
                    budget=self.budget,
                )
            if self._token_count + reserve > self.budget:
                logger.warning(
                    "Token budget cannot be met by evicting history",
                    token_count=self._token_count,
                    reserve=reserve,
                    budget=self.budget,
                )
            return evicted

    def _push(self, message: Message) -> None:
        size = self.estimator(message)
        self._messages.append(message)
        self._sizes.append(size)
        self._token_count += size

    def _evict_oldest(self) -> int:
        message = self._messages.pop(self._pinned)
        self._token_count -= self._sizes.pop(self._pinned)
        evicted = 1
        if message.tool_calls:
            while len(self._messages) > self._pinned and self._messages[self._pinned].role == Role.TOOL:
                self._messages.pop(self._pinned)
                self._token_count -= self._sizes.pop(self._pinned)
                evicted += 1
        return evicted

    def _fit_suffix(self, stored: list[Message]) -> list[Message]:
        available = self.budget - self._token_count
        start = len(stored)
        used = 0
        for index in range(len(stored) - 1, -1, -1):
            size = self.estimator(stored[index])
            if used + size > available:
                break
            used += size
            start = index
        while start < len(stored) and stored[start].role == Role.TOOL:
            start += 1
        return stored[start:]

    def _drop_interrupted_turns(self, stored: list[Message]) -> list[Message]:
        """Remove tool turns whose calls were never all answered, and orphan results."""
        kept: list[Message] = []
        index = 0
        while index < len(stored):
            message = stored[index]
            if message.role != Role.ASSISTANT:
                if message.role != Role.TOOL:
                    kept.append(message)
                index += 1
                continue
            end = index + 1
            while end < len(stored) and stored[end].role == Role.TOOL:
                end += 1
            turn = stored[index:end]
            unanswered = unanswered_tool_calls(turn)
            if unanswered:
                logger.warning(
                    "Dropping interrupted tool turn from restored history",
                    student_id=self.identity.student_id,
                    book_id=self.identity.book_id,
                    unanswered=unanswered,
                )
            else:
                kept.extend(turn)
            index = end
        return kept

    async def _flush_locked(self) -> None:
        if not self._unflushed:
            return
        batch = list(self._unflushed)
        try:
            await self.repository.append_messages(self.identity, batch)
        except Exception as err:
            logger.warning(
                "Failed to persist conversation messages",
                student_id=self.identity.student_id,
                book_id=self.identity.book_id,
                pending=len(batch),
                error_type=type(err).__name__,
                error=str(err),
            )
            raise PersistenceError(f"Failed to persist {len(batch)} messages: {err}", pending=len(batch)) from err
        del self._unflushed[: len(batch)]
        logger.debug(
            "Conversation messages flushed",
            student_id=self.identity.student_id,
            book_id=self.identity.book_id,
            count=len(batch),
        )
