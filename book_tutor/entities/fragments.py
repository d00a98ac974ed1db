"""Provider-neutral streamed response fragments."""

from typing import Optional

from pydantic import BaseModel, Field


class ToolCallDelta(BaseModel):
    """A partial tool call addressed to the in-progress call at ``index``."""

    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


class StreamFragment(BaseModel):
    """One unit of a streamed completion."""

    content: Optional[str] = None
    refusal: Optional[str] = None
    tool_calls: list[ToolCallDelta] = Field(default_factory=list)
