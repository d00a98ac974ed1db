"""Progress events emitted by the conversation orchestrator."""

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from .messages import Message, ToolInvocation

CONTENT_EVENT = "content"
REFUSAL_EVENT = "refusal"
TOOL_CALL_EVENT = "tool_call"
TOOL_RESULT_EVENT = "tool_result"
STOPPED_EVENT = "stopped"

# Custom events for SSE streaming
METADATA_EVENT = "metadata"
ERROR_EVENT = "error"

STOP_REASON_MAX_TOOL_ROUNDS = "max_tool_rounds"


class InvocationPayload(BaseModel):
    id: str
    name: str
    arguments: str


class ResultPayload(BaseModel):
    invocation_id: str
    content: str


class ContentEvent(BaseModel):
    """An incremental text delta."""

    type: Literal["content"] = CONTENT_EVENT
    text: str


class RefusalEvent(BaseModel):
    """The full refusal text, emitted once when the assistant declines."""

    type: Literal["refusal"] = REFUSAL_EVENT
    text: str


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = TOOL_CALL_EVENT
    invocation: InvocationPayload

    @classmethod
    def from_invocation(cls, invocation: ToolInvocation) -> "ToolCallEvent":
        return cls(
            invocation=InvocationPayload(
                id=invocation.id, name=invocation.name, arguments=invocation.arguments_text
            )
        )


class ToolResultEvent(BaseModel):
    type: Literal["tool_result"] = TOOL_RESULT_EVENT
    result: ResultPayload

    @classmethod
    def from_message(cls, message: Message) -> "ToolResultEvent":
        return cls(result=ResultPayload(invocation_id=message.tool_call_id or "", content=message.content or ""))


class StoppedEvent(BaseModel):
    """The tool loop was cut short before the assistant produced a final answer."""

    type: Literal["stopped"] = STOPPED_EVENT
    reason: str
    rounds: int = 0


ResponseEvent = Union[ContentEvent, RefusalEvent, ToolCallEvent, ToolResultEvent, StoppedEvent]


class EventEnvelope(BaseModel):
    """Wrapper used to decode any response event by its discriminator."""

    event: ResponseEvent = Field(discriminator="type")

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> ResponseEvent:
        return cls(event=payload).event  # type: ignore[arg-type]
