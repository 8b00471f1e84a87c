"""
Unit tests for the logging subsystem: context propagation, the JSON
formatter and setup/shutdown.
"""

import json
import logging

import pytest

from academy.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    get_logging_health,
    set_log_context,
    setup_logging,
    shutdown_logging,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="academy.modules.progression.service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Lesson completed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def reset_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.mark.unit
class TestLogContext:
    """Test ContextVar-based context binding."""

    def test_filter_reads_bound_context(self):
        """Records inside a LogContext carry its fields."""
        record = make_record()

        with LogContext(user_id="u-1", lesson_id="l-1", operation="complete_lesson"):
            ContextFilter().filter(record)

        assert record.user_id == "u-1"
        assert record.lesson_id == "l-1"
        assert record.course_id == "N/A"
        assert record.operation == "complete_lesson"
        assert record.correlation_id != "N/A"

    def test_context_reset_on_exit(self):
        """Leaving the block restores the previous context."""
        with LogContext(user_id="u-1", correlation_id="abc"):
            assert get_log_context()["correlation_id"] == "abc"

        assert get_log_context() == {}

    @pytest.mark.asyncio
    async def test_async_context(self):
        """LogContext also works with async with."""
        async with LogContext(course_id="c-1", request_id="req-1"):
            context = get_log_context()

        assert context["course_id"] == "c-1"
        assert context["correlation_id"] == "req-1"

    def test_set_log_context_merges(self):
        """set_log_context adds fields to the current context."""
        set_log_context(user_id="u-1")
        set_log_context(component="leaderboard", request_id="req-2")

        context = get_log_context()
        assert context["user_id"] == "u-1"
        assert context["component"] == "leaderboard"
        assert context["correlation_id"] == "req-2"

    def test_explicit_extra_wins(self):
        """Fields passed via extra are not overwritten by the context."""
        record = make_record(user_id="u-9")

        with LogContext(user_id="u-1"):
            ContextFilter().filter(record)

        assert record.user_id == "u-9"


@pytest.mark.unit
class TestJSONFormatter:
    """Test the canonical JSON representation."""

    def test_context_and_extra_fields(self):
        """Context fields go top-level; everything else under extra."""
        record = make_record(xp_earned=10)
        with LogContext(user_id="u-1", operation="complete_lesson"):
            ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Lesson completed"
        assert data["level"] == "INFO"
        assert data["user_id"] == "u-1"
        assert data["operation"] == "complete_lesson"
        assert "course_id" not in data
        assert data["extra"] == {"xp_earned": 10}


@pytest.mark.unit
class TestSetup:
    """Test the global logging stack."""

    def test_setup_and_shutdown(self):
        """Setup installs the queue pipeline once; shutdown removes it."""
        setup_logging()
        try:
            setup_logging()
            health = get_logging_health()
            assert health.initialized is True
            assert health.queue_max_size == 10_000
            assert health.records_enqueued >= 1
        finally:
            shutdown_logging()

        assert get_logging_health().initialized is False
