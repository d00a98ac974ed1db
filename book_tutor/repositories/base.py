"""Abstract base classes for repository implementations."""

import abc
from typing import Iterable, Optional

from ..entities import AgentSettings, BookInfo, Chapter, ChapterNumber, ConversationIdentity, MessageRecord


class BaseConversationRepository(abc.ABC):
    """Key-ordered append/query store for conversation messages and agent settings."""

    @abc.abstractmethod
    async def load_messages(self, identity: ConversationIdentity) -> list[MessageRecord]:
        """Return every stored message of a conversation ordered by sequence."""
        raise NotImplementedError

    @abc.abstractmethod
    async def append_messages(self, identity: ConversationIdentity, records: list[MessageRecord]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def read_settings(self) -> Optional[AgentSettings]:
        raise NotImplementedError

    @abc.abstractmethod
    async def write_settings(self, settings: AgentSettings) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class BaseLibrary(abc.ABC):
    """Access to books and their chapters.

    The tutor only reads from a library; hosts register books with ``add_book``.
    """

    @abc.abstractmethod
    async def get_book_info(self, book_id: int) -> BookInfo:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_chapter(self, book_id: int, number: ChapterNumber) -> Chapter:
        raise NotImplementedError

    def add_book(self, book: BookInfo, chapters: Iterable[Chapter] = ()) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not accept new books")
