"""Data entities for the tutor service."""

from .chapter import BookInfo, Chapter, ChapterNumber, ChapterPlan
from .config import AgentSettings, ServiceConfig
from .events import (
    CONTENT_EVENT,
    ERROR_EVENT,
    METADATA_EVENT,
    REFUSAL_EVENT,
    STOP_REASON_MAX_TOOL_ROUNDS,
    STOPPED_EVENT,
    TOOL_CALL_EVENT,
    TOOL_RESULT_EVENT,
    ContentEvent,
    EventEnvelope,
    RefusalEvent,
    ResponseEvent,
    StoppedEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from .fragments import StreamFragment, ToolCallDelta
from .headers import HEADER_CORRELATION_ID, SSE_RESPONSE_HEADERS
from .interfaces import ICompletionProvider
from .messages import ConversationIdentity, Message, MessageRecord, Role, ToolInvocation, decode_arguments
from .schemas import ChatRequest, ChatResponse

__all__ = [
    "AgentSettings",
    "ServiceConfig",
    "BookInfo",
    "Chapter",
    "ChapterNumber",
    "ChapterPlan",
    "ConversationIdentity",
    "Message",
    "MessageRecord",
    "Role",
    "ToolInvocation",
    "decode_arguments",
    "StreamFragment",
    "ToolCallDelta",
    "ICompletionProvider",
    "ChatRequest",
    "ChatResponse",
    "ResponseEvent",
    "EventEnvelope",
    "ContentEvent",
    "RefusalEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "StoppedEvent",
    "CONTENT_EVENT",
    "REFUSAL_EVENT",
    "TOOL_CALL_EVENT",
    "TOOL_RESULT_EVENT",
    "STOPPED_EVENT",
    "STOP_REASON_MAX_TOOL_ROUNDS",
    "METADATA_EVENT",
    "ERROR_EVENT",
    "SSE_RESPONSE_HEADERS",
    "HEADER_CORRELATION_ID",
]
