"""Repository implementations for conversation storage and book lookup."""

from .base import BaseConversationRepository, BaseLibrary
from .local import InMemoryConversationRepository, InMemoryLibrary
from .sqlite import SQLiteConversationRepository

__all__ = [
    "BaseConversationRepository",
    "BaseLibrary",
    "InMemoryConversationRepository",
    "InMemoryLibrary",
    "SQLiteConversationRepository",
]
