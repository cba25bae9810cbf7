"""
Exception hierarchy for History Chat.

All exceptions inherit from HistoryChatError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the user can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Optional
from .codes import ErrorCode


class HistoryChatError(Exception):
    """Base exception for all History Chat errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(HistoryChatError):
    """Error during input validation."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if received:
            ctx["received"] = received
        super().__init__(message, details, **ctx)


class IntentExtractionError(HistoryChatError):
    """Keyword extraction failed; the turn cannot be classified."""

    code = ErrorCode.INTENT_EXTRACTION_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        code = ErrorCode.INTENT_PARSE_FAILED if error_type == "parse" else ErrorCode.INTENT_EXTRACTION_FAILED
        super().__init__(message, details, code=code, **context)


class SearchError(HistoryChatError):
    """History search collaborator failed or returned an error payload."""

    code = ErrorCode.SEARCH_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        query: Optional[str] = None,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        code = ErrorCode.SEARCH_NETWORK_ERROR if error_type == "network" else ErrorCode.SEARCH_FAILED
        ctx = {**context}
        if query:
            ctx["query"] = query
        if status_code:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, **ctx)


class GenerationError(HistoryChatError):
    """Generation backend failed for a reason not covered by a subclass."""

    code = ErrorCode.GENERATION_FAILED
    recoverable = True
    user_message = "Sorry, I encountered an error while processing your request. Please try again."

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        code = ErrorCode.GENERATION_TIMEOUT if error_type == "timeout" else None
        ctx = {**context}
        if model:
            ctx["model"] = model
        super().__init__(message, details, code=code, **ctx)


class GenerationUnavailable(GenerationError):
    """Backend is not ready or not reachable."""

    code = ErrorCode.GENERATION_UNAVAILABLE
    user_message = (
        "The language model is not available right now. "
        "Please check that the model server is running and try again."
    )


class GenerationQuotaExceeded(GenerationError):
    """Backend refused the request because a quota or rate limit was hit."""

    code = ErrorCode.GENERATION_QUOTA_EXCEEDED
    user_message = "The language model quota has been exceeded. Please wait a moment and try again."


class GenerationDownloading(GenerationError):
    """Backend model is still downloading or loading."""

    code = ErrorCode.GENERATION_DOWNLOADING
    user_message = "The language model is still downloading. Please try again in a few moments."


class PersistenceError(HistoryChatError):
    """Chat thread storage failed."""

    code = ErrorCode.PERSISTENCE_SAVE_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        operation: Optional[str] = None,
        thread_id: Optional[str] = None,
        **context: Any,
    ):
        if operation == "load":
            code = ErrorCode.PERSISTENCE_LOAD_FAILED
        elif operation == "clear":
            code = ErrorCode.PERSISTENCE_CLEAR_FAILED
        else:
            code = ErrorCode.PERSISTENCE_SAVE_FAILED

        ctx = {**context}
        if operation:
            ctx["operation"] = operation
        if thread_id:
            ctx["thread_id"] = thread_id
        super().__init__(message, details, code=code, **ctx)


class StatusPollError(HistoryChatError):
    """A background status poll (model status, queue stats) failed."""

    code = ErrorCode.STATUS_POLL_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        endpoint: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if endpoint:
            ctx["endpoint"] = endpoint
        super().__init__(message, details, **ctx)
