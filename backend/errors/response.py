"""
Standard error response builders for History Chat.

Provides consistent response formats for API payloads and user-facing chat
replies.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import (
    HistoryChatError,
    GenerationError,
    GenerationUnavailable,
    GenerationQuotaExceeded,
    GenerationDownloading,
    IntentExtractionError,
)

GENERIC_USER_MESSAGE = "Sorry, I encountered an error while processing your request. Please try again."

# Substrings in backend error text, checked in order
_GENERATION_ERROR_MARKERS = (
    (("quota",), GenerationQuotaExceeded),
    (("download",), GenerationDownloading),
    (("not available", "unavailable", "not ready"), GenerationUnavailable),
)


def error_response(
    error: HistoryChatError | Exception, operation: Optional[str] = None, include_context: bool = True
) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        operation: Optional operation name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import ValidationError, error_response
        >>> err = ValidationError("Missing parameter", parameter="thread_id")
        >>> error_response(err, operation="chat")
        {
            "success": False,
            "error": {
                "code": "VALIDATION_MISSING_PARAM",
                "message": "Missing parameter",
                "details": None,
                "operation": "chat",
                "recoverable": True,
                "context": {"parameter": "thread_id"}
            }
        }
    """
    if isinstance(error, HistoryChatError):
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "operation": operation,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "operation": operation,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Example:
        >>> success_response(state="ready")
        {"success": True, "state": "ready"}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response


def classify_generation_error(error: Exception, model: Optional[str] = None) -> GenerationError:
    """Map a raw backend exception onto the generation error hierarchy.

    Already-classified GenerationErrors are returned unchanged. Otherwise the
    lowercased error text is matched against known markers ("quota",
    "download", "not available"/"unavailable"/"not ready"); anything else
    becomes a plain GenerationError.
    """
    if isinstance(error, GenerationError):
        return error

    text = str(error).lower()
    for markers, error_cls in _GENERATION_ERROR_MARKERS:
        if any(marker in text for marker in markers):
            return error_cls(f"Generation failed: {error}", model=model)

    return GenerationError(f"Generation failed: {error}", model=model)


def describe_error_for_user(error: Exception) -> str:
    """User-facing reply text for a failed chat turn."""
    if isinstance(error, GenerationError):
        return error.user_message
    if isinstance(error, IntentExtractionError):
        return "Sorry, I couldn't understand that request. Please try rephrasing it."
    return GENERIC_USER_MESSAGE
