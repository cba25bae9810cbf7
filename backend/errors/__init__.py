"""
History Chat Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the chat pipeline.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        HistoryChatError,
        ValidationError,
        IntentExtractionError,
        SearchError,
        GenerationError,
        GenerationUnavailable,
        GenerationQuotaExceeded,
        GenerationDownloading,
        PersistenceError,
        StatusPollError,

        # Response builders
        error_response,
        success_response,
        classify_generation_error,
        describe_error_for_user,

        # Decorators
        handle_async_errors,
        log_error,
    )

Example:
    from errors import SearchError

    async def search(self, query):
        payload = await self._post("/search", {"query": query})
        if payload.get("error"):
            raise SearchError(
                "History search failed",
                details=str(payload["error"]),
                query=query,
            )
"""

from .codes import ErrorCode
from .exceptions import (
    HistoryChatError,
    ValidationError,
    IntentExtractionError,
    SearchError,
    GenerationError,
    GenerationUnavailable,
    GenerationQuotaExceeded,
    GenerationDownloading,
    PersistenceError,
    StatusPollError,
)
from .response import (
    GENERIC_USER_MESSAGE,
    error_response,
    success_response,
    classify_generation_error,
    describe_error_for_user,
)
from .handlers import (
    handle_async_errors,
    log_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "HistoryChatError",
    "ValidationError",
    "IntentExtractionError",
    "SearchError",
    "GenerationError",
    "GenerationUnavailable",
    "GenerationQuotaExceeded",
    "GenerationDownloading",
    "PersistenceError",
    "StatusPollError",
    # Response builders
    "GENERIC_USER_MESSAGE",
    "error_response",
    "success_response",
    "classify_generation_error",
    "describe_error_for_user",
    # Decorators
    "handle_async_errors",
    "log_error",
]
