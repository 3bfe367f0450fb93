"""
Unit tests for structured logging configuration.

Tests verify:
- Logging configuration works correctly
- call_context binds and restores correlation fields
- The trace context processor enriches event dicts
"""
import logging
from io import StringIO

from modelgate.core import logging as logging_module
from modelgate.core.logging import (
    add_trace_context,
    call_context,
    configure_logging,
    generate_request_id,
    get_logger,
    project_id_var,
    request_id_var,
    trace_id_var,
    user_id_var,
)


class TestLoggingConfiguration:
    """Test logging configuration and setup."""

    def test_configure_logging_json_output(self):
        """Logging configured with JSON output writes events."""
        output = StringIO()
        configure_logging(log_level="INFO", json_output=True)

        root_logger = logging.getLogger()
        handler = logging.StreamHandler(output)
        handler.setLevel(logging.INFO)
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.INFO)
        try:
            get_logger(__name__).info("test_message", test_field="test_value")
            handler.flush()
        finally:
            root_logger.removeHandler(handler)

        output_str = output.getvalue()
        assert "test_message" in output_str
        assert "test_value" in output_str

    def test_configure_logging_console_output(self):
        configure_logging(log_level="INFO", json_output=False)
        get_logger(__name__).info("test_message", test_field="test_value")

    def test_service_name_default(self):
        assert logging_module.SERVICE_NAME == "modelgate"


class TestCallContext:
    """Test correlation binding per call."""

    def test_binds_fresh_request_id_and_restores(self):
        with call_context("user-1", "project-1") as request_id:
            assert request_id_var.get() == request_id
            assert len(request_id) == 36 and request_id.count("-") == 4
            # trace_id defaults to the request id without an active span
            assert trace_id_var.get() == request_id
            assert user_id_var.get() == "user-1"
            assert project_id_var.get() == "project-1"

        assert request_id_var.get() is None
        assert trace_id_var.get() is None
        assert user_id_var.get() is None
        assert project_id_var.get() is None

    def test_explicit_trace_id(self):
        with call_context(trace_id="abc123"):
            assert trace_id_var.get() == "abc123"

    def test_nested_call_reuses_outer_request(self):
        with call_context("outer-user") as outer:
            with call_context("verification-1") as inner:
                assert inner == outer
                assert user_id_var.get() == "outer-user"
            assert request_id_var.get() == outer

    def test_each_call_gets_new_request_id(self):
        with call_context() as first:
            pass
        with call_context() as second:
            pass
        assert first != second
        assert generate_request_id() != generate_request_id()


class TestTraceContextProcessor:
    """Test the add_trace_context processor directly."""

    def test_adds_context_fields(self):
        with call_context("u-1", "p-1", trace_id="t-1") as request_id:
            event = add_trace_context(None, "info", {"event": "model_selected"})

        assert event["trace_id"] == "t-1"
        assert event["request_id"] == request_id
        assert event["user_id"] == "u-1"
        assert event["project_id"] == "p-1"
        assert event["service"] == logging_module.SERVICE_NAME
        assert "timestamp" in event

    def test_explicit_fields_win(self):
        with call_context("context-user"):
            event = add_trace_context(None, "info", {"event": "x", "user_id": "explicit-user"})

        assert event["user_id"] == "explicit-user"

    def test_without_context(self):
        event = add_trace_context(None, "info", {"event": "x"})
        assert "trace_id" not in event
        assert "request_id" not in event


class TestLogLevels:
    """Test different log levels."""

    def test_debug_level(self):
        configure_logging(log_level="DEBUG", json_output=False)
        get_logger(__name__).debug("debug_message")

    def test_exception_logging(self):
        configure_logging(log_level="ERROR", json_output=False)
        logger = get_logger(__name__)
        try:
            raise ValueError("Test exception")
        except ValueError:
            logger.error("exception_occurred", exc_info=True)
