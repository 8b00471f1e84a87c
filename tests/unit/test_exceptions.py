"""
Unit tests for the domain and infrastructure exception hierarchy.
"""

import pytest

from academy.core.exceptions import (
    DuplicateRecordError,
    ErrorSeverity,
    StoreError,
    StoreUnavailableError,
)
from academy.domain.models.base import DomainValidationError
from academy.modules.shared import (
    MismatchedCourseError,
    NotFoundError,
    QuizNotPassedError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)


@pytest.mark.unit
class TestErrorCodes:
    """Test stable error codes and payloads."""

    def test_not_found_code(self):
        """Resource type drives the code."""
        exc = NotFoundError("User", "u-1")

        assert exc.error_code == "USER_NOT_FOUND"
        assert exc.to_dict()["details"]["identifier"] == "u-1"

    def test_validation_code(self):
        """Validation codes name the field."""
        assert ValidationError("score", "bad").error_code == "VALIDATION_SCORE"

    @pytest.mark.parametrize(
        "field, expected_code",
        [("lesson_type", "VALIDATION_LESSON_TYPE"), (None, "VALIDATION_RECORD")],
    )
    def test_validation_from_domain(self, field, expected_code):
        """Model invariant errors keep their field in the code."""
        exc = ValidationError.from_domain(DomainValidationError("Unknown lesson type", field=field))

        assert exc.error_code == expected_code
        assert "Unknown lesson type" in exc.message

    def test_quiz_not_passed(self):
        """The message mentions the required score."""
        exc = QuizNotPassedError("l-2", 69, 70)

        assert exc.error_code == "QUIZ_NOT_PASSED"
        assert "70" in exc.message

    def test_mismatched_course(self):
        """Both course ids are kept in the details."""
        exc = MismatchedCourseError("l-1", "c-1", "c-2")

        assert exc.details["expected_course_id"] == "c-1"
        assert exc.details["supplied_course_id"] == "c-2"
        assert str(exc).startswith("[MISMATCHED_COURSE]")

    def test_store_error_wraps_original(self):
        """The underlying exception is kept for translation."""
        original = RuntimeError("connection reset")
        exc = StoreUnavailableError("store.get_user", original)

        assert exc.original_error is original
        assert exc.error_code == "STORE_UNAVAILABLE"
        assert "connection reset" in exc.message

    def test_duplicate_record(self):
        """Duplicates carry the colliding key."""
        exc = DuplicateRecordError("lesson_completion", {"user_id": "u-1", "lesson_id": "l-1"})

        assert exc.key == {"user_id": "u-1", "lesson_id": "l-1"}
        assert exc.error_code == "DUPLICATE_RECORD"


@pytest.mark.unit
class TestHelpers:
    """Test exception classification helpers."""

    def test_transient(self):
        """Only network-class store failures are transient."""
        assert is_transient_error(StoreUnavailableError("op")) is True
        assert is_transient_error(StoreError("op")) is False
        assert is_transient_error(NotFoundError("User", "u-1")) is False
        assert is_transient_error(RuntimeError("x")) is False

    def test_severity_and_alerting(self):
        """Store errors alert; duplicates and unknown exceptions are classified."""
        assert get_error_severity(StoreError("op")) is ErrorSeverity.ERROR
        assert should_alert(StoreError("op")) is True
        assert should_alert(StoreUnavailableError("op")) is False
        assert should_alert(DuplicateRecordError("x", {})) is False
        assert get_error_severity(ValueError("x")) is ErrorSeverity.ERROR
