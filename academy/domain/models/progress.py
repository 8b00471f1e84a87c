"""
Progress domain models.

Purpose
-------
Immutable value objects for the learner aggregate, lesson reference data,
completion facts and per-course progress. Stores hand these to services;
services never touch ORM rows.

Key invariants
--------------
- `UserAggregate.total_xp` is non-negative. `current_level` is a cached
  value; the XP model derives the real level from `total_xp`.
- One `CompletionRecord` per (user, lesson).
- `CourseProgress.progress_percentage` is 100 only when
  `lessons_completed == total_lessons`.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from academy.domain.models.base import (
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
    validate_range,
)


class LessonType(str, Enum):
    TEXT = "text"
    INTERACTIVE = "interactive"
    QUIZ = "quiz"
    PRACTICAL = "practical"

    @classmethod
    def from_value(cls, value: "str | LessonType") -> "LessonType":
        if isinstance(value, LessonType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise DomainValidationError(
                f"Unknown lesson type {value!r}", field="lesson_type"
            ) from None


@dataclass(frozen=True)
class UserAggregate:
    """
    One learner's gamification state.

    Attributes
    ----------
    user_id : str
    total_xp : int
        Cumulative XP, never decreases.
    current_level : int
        Denormalized level cache (>= 1).
    lessons_completed, courses_completed, badges_earned : int
        Lifetime counters.
    current_streak, longest_streak : int
        Consecutive active days.
    last_activity_date : Optional[date]
        Day of the most recent streak update.
    """

    user_id: str
    total_xp: int = 0
    current_level: int = 1
    lessons_completed: int = 0
    courses_completed: int = 0
    badges_earned: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[date] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_non_negative(self.total_xp, "total_xp")
        validate_positive(self.current_level, "current_level")
        for counter in (
            "lessons_completed",
            "courses_completed",
            "badges_earned",
            "current_streak",
            "longest_streak",
        ):
            validate_non_negative(getattr(self, counter), counter)


@dataclass(frozen=True)
class Lesson:
    lesson_id: str
    course_id: str
    lesson_type: LessonType
    order_index: int = 0
    title: str = ""

    def __post_init__(self) -> None:
        validate_not_empty(self.lesson_id, "lesson_id")
        validate_not_empty(self.course_id, "course_id")
        # accept raw strings from stores and normalise
        object.__setattr__(self, "lesson_type", LessonType.from_value(self.lesson_type))
        validate_non_negative(self.order_index, "order_index")


@dataclass(frozen=True)
class CompletionRecord:
    """The append-only fact that `user_id` finished `lesson_id`."""

    user_id: str
    lesson_id: str
    course_id: str
    xp_earned: int
    completed_at: datetime
    score_percentage: Optional[int] = None
    time_spent_seconds: Optional[int] = None
    attempts: int = 1

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_not_empty(self.lesson_id, "lesson_id")
        validate_non_negative(self.xp_earned, "xp_earned")
        validate_positive(self.attempts, "attempts")
        if self.score_percentage is not None:
            validate_range(self.score_percentage, 0, 100, "score_percentage")
        if self.time_spent_seconds is not None:
            validate_non_negative(self.time_spent_seconds, "time_spent_seconds")

    @property
    def is_perfect_score(self) -> bool:
        return self.score_percentage == 100


def compute_progress_percentage(lessons_completed: int, total_lessons: int) -> int:
    """
    Rounded completion percentage.

    Capped at 99 while lessons remain so that 100 always means every lesson
    is done.
    """
    if total_lessons <= 0:
        raise DomainValidationError("total_lessons must be positive", field="total_lessons")

    completed = min(max(lessons_completed, 0), total_lessons)
    percentage = round(completed / total_lessons * 100)
    if completed < total_lessons:
        percentage = min(percentage, 99)
    return int(percentage)


@dataclass(frozen=True)
class CourseProgress:
    """
    Per (user, course) rollup.

    Mutations return new instances; the store persists them.
    """

    user_id: str
    course_id: str
    total_lessons: int
    lessons_completed: int = 0
    progress_percentage: int = 0
    current_lesson_id: Optional[str] = None
    started_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_not_empty(self.course_id, "course_id")
        validate_non_negative(self.total_lessons, "total_lessons")
        validate_non_negative(self.lessons_completed, "lessons_completed")
        validate_range(self.progress_percentage, 0, 100, "progress_percentage")

    @property
    def is_complete(self) -> bool:
        return self.progress_percentage >= 100

    def with_completed_lessons(
        self, completed_count: int, lesson_id: str, now: datetime
    ) -> "CourseProgress":
        """
        Roll up from the number of completion records in this course.

        The count never moves backwards. `completed_at` is left alone: the
        transition to complete is a separate conditional write.
        """
        if self.total_lessons <= 0:
            raise DomainValidationError(
                f"Course {self.course_id} has no lessons", field="total_lessons"
            )

        completed = min(max(completed_count, self.lessons_completed), self.total_lessons)
        percentage = compute_progress_percentage(completed, self.total_lessons)

        return dataclasses.replace(
            self,
            lessons_completed=completed,
            progress_percentage=max(percentage, self.progress_percentage),
            current_lesson_id=lesson_id,
            started_at=self.started_at or now,
            last_accessed_at=now,
        )

    def mark_completed(self, now: datetime) -> "CourseProgress":
        """Finished copy; an existing completion timestamp wins."""
        return dataclasses.replace(
            self,
            lessons_completed=self.total_lessons,
            progress_percentage=100,
            completed_at=self.completed_at or now,
        )

    def with_current_lesson(self, lesson_id: str, now: datetime) -> "CourseProgress":
        return dataclasses.replace(
            self,
            current_lesson_id=lesson_id,
            started_at=self.started_at or now,
            last_accessed_at=now,
        )
