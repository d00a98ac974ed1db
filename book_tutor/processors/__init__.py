"""Processors for stream assembly, tool dispatch and history management."""

from .history_manager import HistoryManager, approximate_tokens
from .stream_assembler import AssembledTurn, PendingTurn, StreamAssembler
from .tool_registry import Tool, ToolRegistry

__all__ = [
    "AssembledTurn",
    "PendingTurn",
    "StreamAssembler",
    "Tool",
    "ToolRegistry",
    "HistoryManager",
    "approximate_tokens",
]
