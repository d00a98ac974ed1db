"""Assembly of streamed completion fragments into a finished assistant turn."""

from dataclasses import dataclass, field
from typing import Optional

from ..entities import StreamFragment, ToolCallDelta, ToolInvocation, decode_arguments
from ..structured_logging import get_logger

logger = get_logger("STREAM_ASSEMBLER")


@dataclass
class PendingToolCall:
    """Accumulator for one tool call, addressed by its stream index."""

    id: str = ""
    name: str = ""
    arguments: str = ""

    def merge(self, delta: ToolCallDelta) -> None:
        # Providers split every field across chunks; always concatenate.
        if delta.id:
            self.id += delta.id
        if delta.name:
            self.name += delta.name
        if delta.arguments:
            self.arguments += delta.arguments

    def is_empty(self) -> bool:
        return not (self.id or self.name or self.arguments)


@dataclass
class PendingTurn:
    """Working state of the turn being streamed."""

    text: list[str] = field(default_factory=list)
    refusal: list[str] = field(default_factory=list)
    tool_calls: dict[int, PendingToolCall] = field(default_factory=dict)


@dataclass(frozen=True)
class AssembledTurn:
    """A finished assistant turn.

    Attributes:
        content: Concatenated text deltas, possibly empty.
        refusal: Concatenated refusal deltas, possibly empty.
        tool_calls: Completed invocations in index order.
    """

    content: str = ""
    refusal: str = ""
    tool_calls: tuple[ToolInvocation, ...] = ()


class StreamAssembler:
    """Merges ordered fragments into text, refusal and tool invocations."""

    def __init__(self) -> None:
        self._pending = PendingTurn()

    def feed(self, fragment: StreamFragment) -> Optional[str]:
        """Merge one fragment and return its text delta, if any."""
        if fragment.content:
            self._pending.text.append(fragment.content)
        if fragment.refusal:
            self._pending.refusal.append(fragment.refusal)
        for delta in fragment.tool_calls:
            self._pending.tool_calls.setdefault(delta.index, PendingToolCall()).merge(delta)
        return fragment.content or None

    @property
    def refusal(self) -> str:
        return "".join(self._pending.refusal)

    def finalize(self) -> AssembledTurn:
        """Build the finished turn and discard the working state."""
        pending, self._pending = self._pending, PendingTurn()

        invocations = []
        for index in sorted(pending.tool_calls):
            call = pending.tool_calls[index]
            if call.is_empty():
                continue
            arguments, parse_error = decode_arguments(call.arguments)
            if parse_error:
                logger.warning("Tool call arguments could not be decoded", tool_name=call.name, index=index, error=parse_error)
            invocations.append(
                ToolInvocation(
                    id=call.id or f"call_{index}",
                    name=call.name,
                    arguments_text=call.arguments,
                    arguments=arguments,
                    parse_error=parse_error,
                )
            )

        return AssembledTurn(
            content="".join(pending.text),
            refusal="".join(pending.refusal),
            tool_calls=tuple(invocations),
        )
