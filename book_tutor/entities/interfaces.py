"""Abstract base classes defining interfaces for tutor service components."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

from .fragments import StreamFragment


class ICompletionProvider(ABC):
    """Interface for the remote language-completion service."""

    @abstractmethod
    def stream(
        self, model: str, messages: list[dict[str, Any]], tools: Optional[list[dict[str, Any]]] = None
    ) -> AsyncIterator[StreamFragment]:
        """Stream a chat completion.

        Args:
            model: Model identifier
            messages: Provider-format request messages, oldest first
            tools: Tool definitions the model may invoke

        Yields:
            Partial response fragments in arrival order
        """
        pass

    @abstractmethod
    async def complete(self, model: str, messages: list[dict[str, Any]]) -> str:
        """Run a one-shot, non-streaming completion and return its text."""
        pass
