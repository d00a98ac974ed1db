"""In-memory implementations of repositories for development and testing."""

import asyncio
from collections import defaultdict
from typing import Iterable, Optional

from ..entities import AgentSettings, BookInfo, Chapter, ChapterNumber, ConversationIdentity, MessageRecord
from ..errors import BookNotFoundError, ChapterNotFoundError
from .base import BaseConversationRepository, BaseLibrary


class InMemoryConversationRepository(BaseConversationRepository):
    """Conversation store kept in process memory."""

    def __init__(self, settings: Optional[AgentSettings] = None) -> None:
        self._messages: dict[ConversationIdentity, list[MessageRecord]] = defaultdict(list)
        self._settings = settings
        self._lock = asyncio.Lock()
        self.append_calls = 0

    async def load_messages(self, identity: ConversationIdentity) -> list[MessageRecord]:
        async with self._lock:
            return sorted(self._messages.get(identity, []), key=lambda record: record.sequence)

    async def append_messages(self, identity: ConversationIdentity, records: list[MessageRecord]) -> None:
        async with self._lock:
            self.append_calls += 1
            stored = {record.sequence for record in self._messages[identity]}
            # Re-flushing a record after a partial failure must not duplicate it
            self._messages[identity].extend(record for record in records if record.sequence not in stored)

    async def read_settings(self) -> Optional[AgentSettings]:
        return self._settings

    async def write_settings(self, settings: AgentSettings) -> None:
        self._settings = settings


class InMemoryLibrary(BaseLibrary):
    """Library backed by books registered in memory."""

    def __init__(self) -> None:
        self._books: dict[int, BookInfo] = {}
        self._chapters: dict[int, dict[ChapterNumber, Chapter]] = {}

    def add_book(self, book: BookInfo, chapters: Iterable[Chapter] = ()) -> None:
        self._books[book.id] = book
        self._chapters[book.id] = {chapter.number: chapter for chapter in chapters}

    async def get_book_info(self, book_id: int) -> BookInfo:
        try:
            return self._books[book_id]
        except KeyError:
            raise BookNotFoundError(f"Book not found: {book_id}") from None

    async def get_chapter(self, book_id: int, number: ChapterNumber) -> Chapter:
        await self.get_book_info(book_id)
        try:
            return self._chapters[book_id][number]
        except KeyError:
            raise ChapterNotFoundError(f"Chapter not found: {number}") from None
