"""Exception hierarchy for the tutor service."""

from typing import Optional


class TutorServiceError(Exception):
    """Base class for all tutor service errors."""


class StreamTransportError(TutorServiceError):
    """The completion stream could not be opened or failed mid-read."""


class ChannelClosedError(TutorServiceError):
    """The event consumer went away; the current input cannot continue."""


class PersistenceError(TutorServiceError):
    """Flushing conversation messages to storage failed.

    The in-memory history is kept, so a later flush can retry.
    """

    def __init__(self, message: str, pending: int = 0):
        super().__init__(message)
        self.pending = pending


class InconsistentHistoryError(TutorServiceError):
    """A message would break the tool-call/tool-result pairing of the history."""

    def __init__(self, message: str, tool_call_id: Optional[str] = None):
        super().__init__(message)
        self.tool_call_id = tool_call_id


class ToolRegistrationError(TutorServiceError):
    """A tool could not be registered."""


class BookNotFoundError(TutorServiceError):
    pass


class ChapterNotFoundError(TutorServiceError):
    pass
