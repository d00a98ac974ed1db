"""HTTP header constants for the tutor service."""

# Headers for Server-Sent Events (SSE) responses
SSE_RESPONSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",  # Prevent caching of event stream
    "X-Accel-Buffering": "no",  # Disable nginx buffering for real-time streaming
    "Connection": "keep-alive",
    "X-Content-Type-Options": "nosniff",
}

HEADER_CORRELATION_ID = "X-Correlation-ID"
CONTENT_TYPE_EVENT_STREAM = "text/event-stream"

# Characters of the correlation id exposed to clients
CORRELATION_ID_LENGTH = 8
