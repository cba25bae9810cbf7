"""
Tests for the History Chat error handling module.
"""

import asyncio
import logging

from errors import (
    ErrorCode,
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
    error_response,
    success_response,
    classify_generation_error,
    describe_error_for_user,
    handle_async_errors,
    log_error,
)


class TestErrorCodes:
    """Test error code enum."""

    def test_error_codes_are_strings(self):
        """Error codes should be string values."""
        assert ErrorCode.SEARCH_FAILED.value == "SEARCH_FAILED"
        assert ErrorCode.GENERATION_TIMEOUT == "GENERATION_TIMEOUT"

    def test_error_codes_have_categories(self):
        """Error codes should follow category naming convention."""
        generation_codes = [c for c in ErrorCode if c.value.startswith("GENERATION_")]
        assert len(generation_codes) == 5

        persistence_codes = [c for c in ErrorCode if c.value.startswith("PERSISTENCE_")]
        assert len(persistence_codes) == 3


class TestHistoryChatError:
    """Test base HistoryChatError exception."""

    def test_basic_creation(self):
        """Create basic error with message."""
        err = HistoryChatError("Test error")
        assert err.message == "Test error"
        assert err.details is None
        assert err.code == ErrorCode.INTERNAL_UNEXPECTED
        assert err.recoverable is False
        assert err.context is None

    def test_str_representation(self):
        """String representation includes message and details."""
        assert str(HistoryChatError("Test error", details="More info")) == "Test error - More info"
        assert str(HistoryChatError("Test error")) == "Test error"

    def test_to_dict(self):
        """Convert error to dictionary."""
        err = HistoryChatError("Test error", details="More info", key="value")
        d = err.to_dict()
        assert d["code"] == "INTERNAL_UNEXPECTED"
        assert d["details"] == "More info"
        assert d["context"] == {"key": "value"}


class TestSubclasses:
    """Test codes and context of the pipeline exceptions."""

    def test_validation_context(self):
        """Parameter and received value land in context."""
        err = ValidationError("Bad thread", parameter="thread_id", received="a b")
        assert err.code == ErrorCode.VALIDATION_MISSING_PARAM
        assert err.context == {"parameter": "thread_id", "received": "a b"}

    def test_intent_parse_type(self):
        """Parse failures get their own code."""
        assert IntentExtractionError("x").code == ErrorCode.INTENT_EXTRACTION_FAILED
        assert IntentExtractionError("x", error_type="parse").code == ErrorCode.INTENT_PARSE_FAILED

    def test_search_network_type(self):
        """Network failures get their own code; query and status are kept."""
        err = SearchError("Failed", query="github", status_code=502)
        assert err.code == ErrorCode.SEARCH_FAILED
        assert err.context == {"query": "github", "status_code": 502}
        assert SearchError("x", error_type="network").code == ErrorCode.SEARCH_NETWORK_ERROR

    def test_generation_timeout_type(self):
        """Timeout sets GENERATION_TIMEOUT without changing the class."""
        err = GenerationError("Timed out", model="local", error_type="timeout")
        assert err.code == ErrorCode.GENERATION_TIMEOUT
        assert err.context["model"] == "local"
        assert GenerationError("x").code == ErrorCode.GENERATION_FAILED

    def test_generation_subclasses(self):
        """Each generation subclass carries its own code."""
        assert GenerationUnavailable("x").code == ErrorCode.GENERATION_UNAVAILABLE
        assert GenerationQuotaExceeded("x").code == ErrorCode.GENERATION_QUOTA_EXCEEDED
        assert GenerationDownloading("x").code == ErrorCode.GENERATION_DOWNLOADING
        assert isinstance(GenerationDownloading("x"), GenerationError)

    def test_persistence_operations(self):
        """Operation selects the persistence code."""
        assert PersistenceError("x").code == ErrorCode.PERSISTENCE_SAVE_FAILED
        assert PersistenceError("x", operation="load").code == ErrorCode.PERSISTENCE_LOAD_FAILED
        err = PersistenceError("x", operation="clear", thread_id="t1")
        assert err.code == ErrorCode.PERSISTENCE_CLEAR_FAILED
        assert err.context == {"operation": "clear", "thread_id": "t1"}

    def test_status_poll_endpoint(self):
        """Endpoint is kept in context."""
        err = StatusPollError("Poll failed", endpoint="/queue/summary")
        assert err.code == ErrorCode.STATUS_POLL_FAILED
        assert err.context == {"endpoint": "/queue/summary"}


class TestResponses:
    """Test response builders."""

    def test_error_response_for_known_error(self):
        """HistoryChatError keeps its code and context."""
        result = error_response(SearchError("Failed", query="q"), operation="search")
        assert result["success"] is False
        assert result["error"]["code"] == "SEARCH_FAILED"
        assert result["error"]["operation"] == "search"
        assert result["error"]["context"] == {"query": "q"}

    def test_error_response_without_context(self):
        """Context can be left out."""
        result = error_response(SearchError("Failed", query="q"), include_context=False)
        assert result["error"]["context"] is None

    def test_error_response_for_generic_exception(self):
        """Plain exceptions become INTERNAL_UNEXPECTED."""
        result = error_response(ValueError("Bad value"))
        assert result["error"]["code"] == "INTERNAL_UNEXPECTED"
        assert result["error"]["message"] == "Bad value"

    def test_success_response(self):
        """Data and keyword fields are merged."""
        assert success_response({"a": 1}, b=2) == {"success": True, "a": 1, "b": 2}
        assert success_response() == {"success": True}


class TestClassifyGenerationError:
    """Test backend error classification."""

    def test_quota(self):
        """Quota text maps to GenerationQuotaExceeded."""
        err = classify_generation_error(RuntimeError("Quota exceeded for this minute"), model="m")
        assert isinstance(err, GenerationQuotaExceeded)
        assert err.context["model"] == "m"

    def test_downloading(self):
        """Download text maps to GenerationDownloading."""
        assert isinstance(classify_generation_error(RuntimeError("model is downloading")), GenerationDownloading)

    def test_unavailable(self):
        """Availability text maps to GenerationUnavailable."""
        for text in ("Model not available", "service unavailable", "backend not ready"):
            assert isinstance(classify_generation_error(RuntimeError(text)), GenerationUnavailable)

    def test_other(self):
        """Anything else is a plain GenerationError."""
        err = classify_generation_error(RuntimeError("boom"))
        assert type(err) is GenerationError
        assert "boom" in err.message

    def test_passthrough(self):
        """Already-classified errors are returned unchanged."""
        original = GenerationDownloading("still loading")
        assert classify_generation_error(original) is original


class TestDescribeErrorForUser:
    """Test user-facing reply text."""

    def test_generation_messages_differ(self):
        """Each generation failure has its own message."""
        messages = {
            describe_error_for_user(GenerationError("x")),
            describe_error_for_user(GenerationUnavailable("x")),
            describe_error_for_user(GenerationQuotaExceeded("x")),
            describe_error_for_user(GenerationDownloading("x")),
        }
        assert len(messages) == 4
        assert "downloading" in describe_error_for_user(GenerationDownloading("x"))

    def test_intent_and_generic(self):
        """Intent failures ask for a rephrase; others get the generic message."""
        assert "rephras" in describe_error_for_user(IntentExtractionError("x"))
        assert describe_error_for_user(ValueError("x")).startswith("Sorry")


class TestHandleAsyncErrors:
    """Test handle_async_errors decorator."""

    def test_success_passthrough(self):
        """Successful function returns normally."""

        @handle_async_errors("test")
        async def my_func():
            return {"success": True, "result": 42}

        assert asyncio.run(my_func()) == {"success": True, "result": 42}

    def test_known_error_handling(self, caplog):
        """HistoryChatError is caught, logged and converted."""

        @handle_async_errors("status")
        async def my_func():
            raise StatusPollError("Poll failed")

        with caplog.at_level(logging.ERROR):
            result = asyncio.run(my_func())

        assert result["success"] is False
        assert result["error"]["code"] == "STATUS_POLL_FAILED"
        assert result["error"]["operation"] == "status"
        assert "STATUS_POLL_FAILED" in caplog.text

    def test_generic_exception_handling(self):
        """Generic Exception is caught and converted."""

        @handle_async_errors("test")
        async def my_func():
            raise ValueError("Bad value")

        result = asyncio.run(my_func())
        assert result["error"]["code"] == "INTERNAL_UNEXPECTED"

    def test_preserves_function_metadata(self):
        """Decorator preserves function name and stays async."""

        @handle_async_errors("test")
        async def my_func():
            """My docstring."""
            return {}

        assert asyncio.iscoroutinefunction(my_func)
        assert my_func.__name__ == "my_func"
        assert my_func.__doc__ == "My docstring."


class TestLogError:
    """Test log_error formatting."""

    def test_known_error_format(self, caplog):
        """Known errors log code and message with the context prefix."""
        logger = logging.getLogger("test.log_error")
        with caplog.at_level(logging.ERROR):
            log_error(logger, SearchError("History search failed"), context="Search", include_traceback=False)
        assert "[Search] SEARCH_FAILED: History search failed" in caplog.text

    def test_plain_error_format(self, caplog):
        """Plain exceptions log their text."""
        logger = logging.getLogger("test.log_error")
        with caplog.at_level(logging.ERROR):
            log_error(logger, ValueError("oops"), include_traceback=False)
        assert "oops" in caplog.text
