"""Conversation message entities."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def decode_arguments(arguments_text: str) -> tuple[Any, Optional[str]]:
    """Decode streamed tool arguments, returning (arguments, error)."""
    try:
        return json.loads(arguments_text or "{}"), None
    except json.JSONDecodeError as err:
        return None, f"Invalid JSON arguments: {err}"


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ConversationIdentity(BaseModel):
    """The (student, book) pair that owns a conversation."""

    model_config = ConfigDict(frozen=True)

    student_id: int
    book_id: int


class ToolInvocation(BaseModel):
    """A request from the assistant to run a named tool.

    Attributes:
        id: Identifier, unique within the turn that produced it.
        name: Name of the tool to invoke.
        arguments_text: Argument payload exactly as streamed by the provider.
        arguments: Decoded argument payload; None when decoding failed.
        parse_error: Why the argument text could not be decoded, if it could not.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments_text: str = ""
    arguments: Any = None
    parse_error: Optional[str] = None

    def to_provider_format(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_text},
        }


class Message(BaseModel):
    """A single conversation message; immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: Optional[str] = None
    refusal: Optional[str] = None
    tool_calls: tuple[ToolInvocation, ...] = ()
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: Optional[str] = None,
        refusal: Optional[str] = None,
        tool_calls: Optional[list[ToolInvocation]] = None,
    ) -> "Message":
        """Build an assistant message, leaving empty parts unset."""
        return cls(
            role=Role.ASSISTANT,
            content=content or None,
            refusal=refusal or None,
            tool_calls=tuple(tool_calls or ()),
        )

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "Message":
        """Build the tool-role message answering one invocation."""
        return cls(role=Role.TOOL, tool_call_id=tool_call_id, content=content)

    def to_provider_format(self) -> dict[str, Any]:
        """Render the message as a chat completion request message."""
        payload: dict[str, Any] = {"role": self.role.value}
        if self.content is not None or not self.tool_calls:
            payload["content"] = self.content if self.content is not None else ""
        if self.refusal is not None:
            payload["refusal"] = self.refusal
        if self.tool_calls:
            payload["tool_calls"] = [call.to_provider_format() for call in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        return payload


class MessageRecord(BaseModel):
    """A message as persisted, with its position in the conversation."""

    role: Role
    content: Optional[str] = None
    refusal: Optional[str] = None
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    sequence: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_message(cls, message: Message, sequence: int) -> "MessageRecord":
        tool_calls = None
        if message.tool_calls:
            tool_calls = [
                {"id": call.id, "name": call.name, "arguments": call.arguments_text} for call in message.tool_calls
            ]
        return cls(
            role=message.role,
            content=message.content,
            refusal=message.refusal,
            tool_calls=tool_calls,
            tool_call_id=message.tool_call_id,
            sequence=sequence,
        )

    def to_message(self) -> Message:
        invocations = []
        for call in self.tool_calls or []:
            arguments_text = call.get("arguments") or ""
            arguments, parse_error = decode_arguments(arguments_text)
            invocations.append(
                ToolInvocation(
                    id=call["id"],
                    name=call["name"],
                    arguments_text=arguments_text,
                    arguments=arguments,
                    parse_error=parse_error,
                )
            )
        return Message(
            role=self.role,
            content=self.content,
            refusal=self.refusal,
            tool_calls=tuple(invocations),
            tool_call_id=self.tool_call_id,
        )
