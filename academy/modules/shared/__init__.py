"""
Academy Shared Module

Domain-level foundations for the progression modules:
- BaseService: logging, config and event helpers
- BaseRepository: typed SQLAlchemy query helpers
- ProgressStore: the persistence contract every service receives
- Domain exceptions and error helpers

Usage
-----
    from academy.modules.shared import BaseService, ProgressStore, NotFoundError
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    AcademyDomainException,
    InvalidCourseError,
    LessonNotFoundError,
    MismatchedCourseError,
    NotEnrolledError,
    NotFoundError,
    QuizNotPassedError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from .store import USER_COUNTERS, ProgressStore

__all__ = [
    # Base patterns
    "BaseRepository",
    "BaseService",
    "ProgressStore",
    "USER_COUNTERS",
    # Domain exceptions
    "AcademyDomainException",
    "ValidationError",
    "NotFoundError",
    "LessonNotFoundError",
    "MismatchedCourseError",
    "QuizNotPassedError",
    "InvalidCourseError",
    "NotEnrolledError",
    # Helpers
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]
