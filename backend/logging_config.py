"""
History Chat Logging Configuration - Color-Coded Service Logs

Provides:
- ColorFormatter: ANSI color-coded log output
- Helper functions: log_message_in, log_message_out, log_search, log_llm, log_poll
- setup_logging(): Configure application logging

Usage:
    from logging_config import setup_logging, log_message_in, log_search
    setup_logging()
    logger = logging.getLogger(__name__)
    log_message_in(logger, "find my github PR", thread="abc")
"""

import logging
import sys

# ANSI color codes
COLORS = {
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    "MSG_IN": "\033[96m",  # Cyan - incoming message
    "MSG_OUT": "\033[92m",  # Green - outgoing reply
    "SEARCH": "\033[93m",  # Yellow - history search
    "LLM": "\033[94m",  # Blue - generation
    "POLL": "\033[95m",  # Magenta - background monitors
    "ERROR": "\033[91m",
    "WARN": "\033[33m",
    "DEBUG": "\033[90m",
}


class ColorFormatter(logging.Formatter):
    """Formatter with colors per log level."""

    LEVEL_COLORS = {
        logging.DEBUG: COLORS["DEBUG"],
        logging.INFO: COLORS["RESET"],
        logging.WARNING: COLORS["WARN"],
        logging.ERROR: COLORS["ERROR"],
        logging.CRITICAL: COLORS["ERROR"] + COLORS["BOLD"],
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, COLORS["RESET"])

        # timestamp [LEVL] logger: message
        timestamp = self.formatTime(record, "%H:%M:%S")
        level = record.levelname[:4]
        name = record.name.rsplit(".", 1)[-1]

        formatted = (
            f"{COLORS['DIM']}{timestamp}{COLORS['RESET']} "
            f"[{color}{level}{COLORS['RESET']}] "
            f"{COLORS['DIM']}{name}:{COLORS['RESET']} "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def setup_logging(level: int = logging.INFO) -> None:
    """Configure colored logging for the application."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


# =============================================================================
# COLORED LOG HELPER FUNCTIONS
# =============================================================================


def log_message_in(logger: logging.Logger, message: str, **context) -> None:
    """Log incoming user message.

    Args:
        logger: Logger instance
        message: User message text
        **context: Additional context (thread, gated, etc.)
    """
    preview = message[:80] + "..." if len(message) > 80 else message
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    logger.info(f"{COLORS['MSG_IN']}>>> MESSAGE{COLORS['RESET']} {preview} [{ctx}]")


def log_message_out(
    logger: logging.Logger,
    quality: str = "none",
    links: int = 0,
    is_error: bool = False,
) -> None:
    """Log outgoing reply with its retrieval quality tier and link count."""
    status = "error" if is_error else "ok"
    logger.info(
        f"{COLORS['MSG_OUT']}<<< REPLY{COLORS['RESET']} "
        f"status={status} quality={quality} links={links}"
    )


def log_search(logger: logging.Logger, state: str, query: str = "", **context) -> None:
    """Log a history search call.

    Args:
        logger: Logger instance
        state: 'start' or 'end'
        query: Joined keyword query
        **context: Additional context (results, mode, etc.)
    """
    ctx = " ".join(f"{k}={v}" for k, v in context.items()) if context else ""
    if state == "start":
        logger.info(f"{COLORS['SEARCH']}>>> SEARCH{COLORS['RESET']} '{query}' {ctx}")
    else:
        logger.info(f"{COLORS['SEARCH']}<<< SEARCH{COLORS['RESET']} '{query}' {ctx}")


def log_llm(
    logger: logging.Logger,
    state: str,
    model: str = "",
    duration: float = 0,
) -> None:
    """Log LLM call.

    Args:
        logger: Logger instance
        state: 'start' or 'end'
        model: Model name
        duration: Call duration in seconds (for end state)
    """
    if state == "start":
        logger.info(f"{COLORS['LLM']}>>> LLM{COLORS['RESET']} calling {model}")
    else:
        logger.info(f"{COLORS['LLM']}<<< LLM{COLORS['RESET']} " f"{model} completed in {duration:.1f}s")


def log_poll(logger: logging.Logger, monitor: str, state: str, /, **context) -> None:
    """Log a background monitor transition (readiness, warm-up, gate)."""
    ctx = " ".join(f"{k}={v}" for k, v in context.items()) if context else ""
    logger.info(f"{COLORS['POLL']}~~~ {monitor.upper()}{COLORS['RESET']} {state} {ctx}".rstrip())
