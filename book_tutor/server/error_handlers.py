"""Centralized error handling for the tutor service."""

from typing import Any

from fastapi import HTTPException

from ..entities.headers import CORRELATION_ID_LENGTH
from ..structured_logging import get_logger

logger = get_logger("ERROR_HANDLERS")


class ErrorHandler:
    """Centralized error handling utilities."""

    @staticmethod
    def handle_transport_error(err: Exception, operation: str, correlation_id: str, **context: Any) -> HTTPException:
        """Convert completion stream failures to HTTP exceptions with consistent logging."""
        logger.error(
            f"Completion {operation} failed",
            correlation_id=correlation_id,
            error_type=type(err).__name__,
            error=str(err),
            **context,
        )
        return HTTPException(
            status_code=502, detail=f"Failed to {operation} (correlation_id: {correlation_id[:CORRELATION_ID_LENGTH]})"
        )

    @staticmethod
    def handle_not_found(err: Exception, correlation_id: str, **context: Any) -> HTTPException:
        logger.warning("Requested resource not found", correlation_id=correlation_id, error=str(err), **context)
        return HTTPException(
            status_code=404, detail=f"{err} (correlation_id: {correlation_id[:CORRELATION_ID_LENGTH]})"
        )

    @staticmethod
    def handle_unexpected_error(err: Exception, operation: str, correlation_id: str, **context: Any) -> HTTPException:
        """Convert unexpected errors to HTTP exceptions with consistent logging."""
        logger.error(
            f"Unexpected error during {operation}",
            correlation_id=correlation_id,
            error_type=type(err).__name__,
            error=str(err),
            **context,
        )
        return HTTPException(
            status_code=500, detail=f"Internal server error (correlation_id: {correlation_id[:CORRELATION_ID_LENGTH]})"
        )
