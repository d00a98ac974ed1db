"""Conversation services: orchestration, event delivery and summarization."""

from .event_channel import EventChannel
from .orchestrator import ConversationOrchestrator, OrchestratorState
from .sessions import ConversationSessions
from .summarizer import Summarizer

__all__ = [
    "ConversationOrchestrator",
    "ConversationSessions",
    "EventChannel",
    "OrchestratorState",
    "Summarizer",
]
