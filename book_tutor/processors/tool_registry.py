"""Tool registration and execution for the tutor service."""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ValidationError

from ..entities import Message, ToolInvocation
from ..errors import ToolRegistrationError
from ..structured_logging import get_logger, get_or_create_correlation_id

logger = get_logger("TOOL_REGISTRY")


class Tool(ABC):
    """A capability the assistant can invoke by name.

    Subclasses declare a name, a description and a pydantic model describing
    their arguments; the model doubles as the JSON schema sent to the provider.
    """

    name: str
    description: Optional[str] = None
    args_model: type[BaseModel]

    @abstractmethod
    async def call(self, args: Any) -> Any:
        """Run the tool with validated arguments and return its result."""
        pass

    def definition(self) -> dict[str, Any]:
        """Return the function tool definition sent to the completion provider."""
        function: dict[str, Any] = {
            "name": self.name,
            "parameters": self.args_model.model_json_schema(),
        }
        if self.description:
            function["description"] = self.description
        return {"type": "function", "function": function}


def render_tool_output(output: Any) -> str:
    """Serialize a tool result to the text sent back to the model."""
    if isinstance(output, str):
        return output
    if isinstance(output, BaseModel):
        return output.model_dump_json()
    return json.dumps(output, default=str)


class ToolRegistry:
    """Maps tool names to tools and dispatches invocations to them."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or ():
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if not getattr(tool, "name", None):
            raise ToolRegistrationError(f"Tool {type(tool).__name__} has no name")
        if tool.name in self._tools:
            raise ToolRegistrationError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.definition() for tool in self._tools.values()]

    async def call(self, invocations: Iterable[ToolInvocation]) -> list[Message]:
        """Execute a batch of invocations concurrently.

        Returns:
            One tool-role message per invocation, in invocation order
        """
        correlation_id = get_or_create_correlation_id()
        return list(
            await asyncio.gather(*(self.execute(invocation, correlation_id) for invocation in invocations))
        )

    async def execute(self, invocation: ToolInvocation, correlation_id: Optional[str] = None) -> Message:
        """Execute a single invocation; every failure becomes an error result."""
        correlation_id = correlation_id or get_or_create_correlation_id()
        context = {"tool_name": invocation.name, "tool_call_id": invocation.id, "correlation_id": correlation_id}

        if invocation.parse_error:
            logger.error("Invalid JSON in tool arguments", error=invocation.parse_error, **context)
            return Message.tool_result(invocation.id, f"Error: {invocation.parse_error}")

        tool = self._tools.get(invocation.name)
        if tool is None:
            logger.error("Unknown tool requested", available=self.names, **context)
            return Message.tool_result(
                invocation.id,
                f"Error: Tool '{invocation.name}' not available (correlation_id: {correlation_id[:8]})",
            )

        try:
            args = tool.args_model.model_validate(invocation.arguments)
        except ValidationError as err:
            logger.warning("Invalid arguments for tool", error_count=err.error_count(), error=str(err), **context)
            return Message.tool_result(
                invocation.id, f"Error: Invalid arguments for tool '{invocation.name}': {err}"
            )

        try:
            logger.debug("Executing tool", args=invocation.arguments_text, **context)
            output = await tool.call(args)
            logger.info("Tool executed successfully", **context)
            return Message.tool_result(invocation.id, render_tool_output(output))
        except Exception as err:  # noqa: BLE001
            logger.error("Tool execution failed", error_type=type(err).__name__, error=str(err), **context)
            return Message.tool_result(
                invocation.id,
                f"Error: Tool '{invocation.name}' execution failed: {err} (correlation_id: {correlation_id[:8]})",
            )
