"""
Error handling decorators and utilities for History Chat.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .exceptions import HistoryChatError
from .response import error_response

F = TypeVar("F", bound=Callable[..., Any])


def handle_async_errors(operation: str, logger: Optional[logging.Logger] = None):
    """Decorator that catches exceptions and returns standard error responses.

    Wraps an async function to catch all exceptions, log them with stack
    traces, and return a standardized error response dictionary.

    Args:
        operation: Name of the operation for error response context
        logger: Optional logger instance (defaults to an operation-specific logger)

    Example:
        >>> @handle_async_errors("status")
        ... async def get_status():
        ...     return success_response(state=monitor.state.value)
    """

    def decorator(func: F) -> F:
        log = logger or logging.getLogger(f"histchat.{operation}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> dict:
            try:
                return await func(*args, **kwargs)
            except HistoryChatError as e:
                log.error(f"[{operation}] {e.code.value}: {e.message}", exc_info=True)
                return error_response(e, operation=operation)
            except Exception as e:
                log.error(f"[{operation}] Unexpected error: {e}", exc_info=True)
                return error_response(e, operation=operation)

        return wrapper  # type: ignore

    return decorator


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Example:
        >>> log_error(logger, err, context="Search")
        # Logs: "[Search] SEARCH_FAILED: History search failed"
    """
    if isinstance(error, HistoryChatError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
