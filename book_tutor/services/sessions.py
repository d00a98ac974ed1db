"""Per-conversation orchestrator cache shared by the server."""

import asyncio
from collections import OrderedDict
from typing import Awaitable, Callable, Optional

from ..entities import ConversationIdentity
from ..structured_logging import get_logger
from .orchestrator import ConversationOrchestrator

logger = get_logger("SESSIONS")

OrchestratorFactory = Callable[[ConversationIdentity], Awaitable[ConversationOrchestrator]]


class ConversationSessions:
    """Creates one orchestrator per (student, book) on first use and reuses it.

    At most ``max_sessions`` orchestrators are kept. When a new conversation
    needs room, the least recently used idle one is flushed and dropped; its
    history is reloaded from storage on the next request. Orchestrators busy
    with an input are never evicted, so the cache may briefly hold more.
    """

    def __init__(self, factory: OrchestratorFactory, max_sessions: Optional[int] = None):
        if max_sessions is not None and max_sessions <= 0:
            raise ValueError("max_sessions must be positive")
        self._factory = factory
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[ConversationIdentity, ConversationOrchestrator]" = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, identity: object) -> bool:
        return identity in self._sessions

    async def get(self, identity: ConversationIdentity) -> ConversationOrchestrator:
        async with self._lock:
            orchestrator = self._sessions.get(identity)
            if orchestrator is not None:
                self._sessions.move_to_end(identity)
                return orchestrator

            await self._evict_idle()
            orchestrator = await self._factory(identity)
            self._sessions[identity] = orchestrator
            logger.info(
                "Conversation session created",
                student_id=identity.student_id,
                book_id=identity.book_id,
                active_sessions=len(self._sessions),
            )
            return orchestrator

    async def close(self) -> None:
        async with self._lock:
            sessions, self._sessions = list(self._sessions.values()), OrderedDict()
        for orchestrator in sessions:
            await orchestrator.close()

    async def _evict_idle(self) -> None:
        if self.max_sessions is None:
            return
        # Flushing under the lock makes a reload of the same identity see every message
        for identity in list(self._sessions):
            if len(self._sessions) < self.max_sessions:
                return
            orchestrator = self._sessions[identity]
            if orchestrator.busy:
                continue
            del self._sessions[identity]
            await orchestrator.close()
            logger.info(
                "Conversation session evicted",
                student_id=identity.student_id,
                book_id=identity.book_id,
                active_sessions=len(self._sessions),
            )
        if len(self._sessions) >= self.max_sessions:
            logger.warning(
                "Session limit exceeded, every cached conversation is busy",
                active_sessions=len(self._sessions),
                max_sessions=self.max_sessions,
            )
