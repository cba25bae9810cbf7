"""
Error codes for History Chat.

Codes are grouped by the pipeline stage that raises them so that logs and
API payloads say where a turn failed.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes.

    Categories:
    - INTENT_*: Keyword extraction / intent classification
    - SEARCH_*: History search collaborator
    - GENERATION_*: Language model backend
    - PERSISTENCE_*: Chat thread storage
    - STATUS_*: Background status polling (model, queues)
    - VALIDATION_*: Input validation
    - INTERNAL_*: Unexpected failures
    """

    # Intent classification
    INTENT_EXTRACTION_FAILED = "INTENT_EXTRACTION_FAILED"
    INTENT_PARSE_FAILED = "INTENT_PARSE_FAILED"

    # History search
    SEARCH_FAILED = "SEARCH_FAILED"
    SEARCH_NETWORK_ERROR = "SEARCH_NETWORK_ERROR"

    # Generation backend
    GENERATION_FAILED = "GENERATION_FAILED"
    GENERATION_UNAVAILABLE = "GENERATION_UNAVAILABLE"
    GENERATION_QUOTA_EXCEEDED = "GENERATION_QUOTA_EXCEEDED"
    GENERATION_DOWNLOADING = "GENERATION_DOWNLOADING"
    GENERATION_TIMEOUT = "GENERATION_TIMEOUT"

    # Chat thread storage
    PERSISTENCE_SAVE_FAILED = "PERSISTENCE_SAVE_FAILED"
    PERSISTENCE_LOAD_FAILED = "PERSISTENCE_LOAD_FAILED"
    PERSISTENCE_CLEAR_FAILED = "PERSISTENCE_CLEAR_FAILED"

    # Status polling
    STATUS_POLL_FAILED = "STATUS_POLL_FAILED"

    # Validation
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"

    # Internal
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_STATE_ERROR = "INTERNAL_STATE_ERROR"
