"""
Domain exceptions for the Academy progression engine.

Purpose
-------
Structured exceptions for business rule violations: missing references,
mismatched course/lesson pairs, failed quizzes and enrollment problems.
Services raise them internally; public service entry points convert them
into `success=False` results carrying `error` and `error_code`.

Design Notes
------------
- All domain exceptions inherit from `AcademyDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and a stable `error_code`.
- None of these are retryable: validation failures are never retried.
- Helper functions cover both domain and infrastructure exceptions.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from academy.core.exceptions import AcademyInfrastructureException, ErrorSeverity
from academy.domain.models.base import DomainValidationError


class AcademyDomainException(Exception):
    """
    Base exception for all Academy domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise AcademyDomainException(
        ...     "Completion rejected",
        ...     {"reason": "course archived"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ValidationError(AcademyDomainException):
    """
    Raised when caller input fails validation (bad score, unknown timeframe).

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )

    @classmethod
    def from_domain(cls, exc: DomainValidationError) -> "ValidationError":
        """Wrap a broken model invariant so entry points report it as a result."""
        return cls(exc.field or "record", str(exc))


class NotFoundError(AcademyDomainException):
    """
    Raised when a referenced record does not exist.

    Args:
        resource_type: Type of resource (e.g., "User", "Achievement")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class LessonNotFoundError(NotFoundError):
    def __init__(self, lesson_id: str) -> None:
        super().__init__("Lesson", lesson_id)
        self.lesson_id = lesson_id


class MismatchedCourseError(AcademyDomainException):
    """
    Raised when the supplied course does not own the supplied lesson.

    Args:
        lesson_id: Lesson the caller completed
        expected_course_id: Course that actually owns the lesson
        supplied_course_id: Course the caller claimed
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, lesson_id: str, expected_course_id: str, supplied_course_id: str) -> None:
        self.lesson_id = lesson_id
        self.expected_course_id = expected_course_id
        self.supplied_course_id = supplied_course_id
        super().__init__(
            f"Lesson {lesson_id} belongs to course {expected_course_id}, "
            f"not {supplied_course_id}",
            details={
                "lesson_id": lesson_id,
                "expected_course_id": expected_course_id,
                "supplied_course_id": supplied_course_id,
            },
            error_code="MISMATCHED_COURSE",
        )


class QuizNotPassedError(AcademyDomainException):
    """
    Raised when a quiz is submitted without a passing score.

    Not a failure of the system: the learner should try again.

    Args:
        lesson_id: The quiz lesson
        score: Submitted score, or None when missing
        passing_score: Minimum score required
    """

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG

    def __init__(self, lesson_id: str, score: Optional[int], passing_score: int) -> None:
        self.lesson_id = lesson_id
        self.score = score
        self.passing_score = passing_score
        if score is None:
            message = f"Quiz {lesson_id} requires a score of at least {passing_score}"
        else:
            message = (
                f"Quiz score {score} is below the passing score of {passing_score}; "
                "try again"
            )
        super().__init__(
            message,
            details={"lesson_id": lesson_id, "score": score, "passing_score": passing_score},
            error_code="QUIZ_NOT_PASSED",
        )


class InvalidCourseError(AcademyDomainException):
    """Raised when a course cannot track progress (e.g. it has zero lessons)."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, course_id: str, reason: str) -> None:
        self.course_id = course_id
        self.reason = reason
        super().__init__(
            f"Invalid course {course_id}: {reason}",
            details={"course_id": course_id, "reason": reason},
            error_code="INVALID_COURSE",
        )


class NotEnrolledError(AcademyDomainException):
    """Raised when no progress record exists for (user, course) after retries."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, user_id: str, course_id: str) -> None:
        self.user_id = user_id
        self.course_id = course_id
        super().__init__(
            f"User {user_id} is not enrolled in course {course_id}",
            details={"user_id": user_id, "course_id": course_id},
            error_code="NOT_ENROLLED",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: BaseException) -> bool:
    """True if the exception is marked retryable."""
    if isinstance(exc, (AcademyDomainException, AcademyInfrastructureException)):
        return exc.is_retryable
    return False


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, (AcademyDomainException, AcademyInfrastructureException)):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """True if severity is ERROR or CRITICAL."""
    severity = get_error_severity(exc)
    return severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
