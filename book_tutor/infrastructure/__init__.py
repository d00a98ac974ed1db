"""Infrastructure adapters for external services."""

from .openai_provider import OpenAIClientFactory, OpenAICompletionProvider, fragment_from_chunk

__all__ = ["OpenAIClientFactory", "OpenAICompletionProvider", "fragment_from_chunk"]
