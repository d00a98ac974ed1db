"""OpenAI chat completions adapter for the completion provider interface."""

from typing import Any, AsyncIterator, Optional

from openai import AsyncOpenAI

from ..entities import ICompletionProvider, ServiceConfig, StreamFragment, ToolCallDelta
from ..structured_logging import get_logger

logger = get_logger("OPENAI_PROVIDER")


class OpenAIClientFactory:
    """Factory for creating OpenAI client instances."""

    @staticmethod
    def create_client(api_key: Optional[str] = None, base_url: Optional[str] = None) -> AsyncOpenAI:
        """Create a new AsyncOpenAI client instance.

        Args:
            api_key: Optional API key. If not provided, uses environment variable.
            base_url: Optional OpenAI compatible endpoint.

        Returns:
            Configured AsyncOpenAI client
        """
        client = AsyncOpenAI(api_key=api_key or None, base_url=base_url)
        logger.debug("OpenAI client created", base_url=base_url)
        return client

    @staticmethod
    def create_from_config(config: ServiceConfig) -> AsyncOpenAI:
        return OpenAIClientFactory.create_client(config.openai_api_key, config.openai_base_url)


def fragment_from_chunk(chunk: Any) -> Optional[StreamFragment]:
    """Convert a ChatCompletionChunk to a fragment; None for chunks without choices."""
    if not chunk.choices:
        return None
    delta = chunk.choices[-1].delta
    tool_calls = [
        ToolCallDelta(
            index=call.index,
            id=call.id,
            name=call.function.name if call.function else None,
            arguments=call.function.arguments if call.function else None,
        )
        for call in delta.tool_calls or []
    ]
    return StreamFragment(
        content=delta.content,
        refusal=getattr(delta, "refusal", None),
        tool_calls=tool_calls,
    )


class OpenAICompletionProvider(ICompletionProvider):
    """Streams chat completions from an OpenAI compatible API."""

    def __init__(self, client: AsyncOpenAI):
        self.client = client

    async def stream(
        self, model: str, messages: list[dict[str, Any]], tools: Optional[list[dict[str, Any]]] = None
    ) -> AsyncIterator[StreamFragment]:
        request: dict[str, Any] = {"model": model, "messages": messages, "stream": True}
        if tools:
            request["tools"] = tools
        logger.debug("Opening completion stream", model=model, message_count=len(messages), tool_count=len(tools or []))
        response = await self.client.chat.completions.create(**request)
        async for chunk in response:
            fragment = fragment_from_chunk(chunk)
            if fragment is not None:
                yield fragment

    async def complete(self, model: str, messages: list[dict[str, Any]]) -> str:
        response = await self.client.chat.completions.create(model=model, messages=messages)  # type: ignore[arg-type]
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
