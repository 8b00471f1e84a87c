"""
Progress Service

Purpose
-------
Records lesson completions and everything that follows from them: lesson
XP, course progress, the one-time course completion bonus, activity streaks
and the follow-up badge pass.

Domain
------
- Idempotent completion recording keyed by (user, lesson)
- Quiz gating: a quiz completes only with a passing score
- XP awards through the shared `XpAwarder` (atomic add, read-modify-write
  fallback)
- Course progress rolled up from completion records, with a cascade to
  the completion bonus guarded by a conditional write
- Daily activity streaks

Consistency
-----------
The completion record is written before XP is awarded. If the award then
fails on both paths, the learner has a completion without its XP. This gap
is accepted: it is logged at ERROR with `soft_inconsistency=True` and the
call reports failure. Re-submitting the lesson is a duplicate and does not
repair it.

Failure semantics
-----------------
Public methods never raise for domain conditions or store failures; they
return `success=False` with `error` and `error_code`. Programming errors
propagate.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from academy.core.config import Config
from academy.core.database.retry_policy import RetryPolicy, retry_until_found
from academy.core.event.types import EventNames
from academy.core.exceptions import AcademyInfrastructureException, DuplicateRecordError
from academy.core.logging.logger import LogContext
from academy.domain.models.base import DomainValidationError
from academy.domain.models.progress import CompletionRecord, CourseProgress, LessonType
from academy.modules.progression.lesson_rules import LessonXpRules
from academy.modules.progression.xp_award import XpAwarder
from academy.modules.shared.base_service import BaseService
from academy.modules.shared.exceptions import (
    AcademyDomainException,
    InvalidCourseError,
    LessonNotFoundError,
    MismatchedCourseError,
    NotEnrolledError,
    NotFoundError,
    QuizNotPassedError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from academy.core.config.manager import ConfigManager
    from academy.core.event.bus import EventBus
    from academy.modules.achievements.service import AchievementService
    from academy.modules.shared.store import ProgressStore

Clock = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]

_HANDLED_ERRORS = (AcademyDomainException, AcademyInfrastructureException, DomainValidationError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressService(BaseService):
    """
    Completion recording, course progress and streaks.

    Dependencies:
        - ProgressStore: persistence for users, lessons, completions, progress
        - XpAwarder: shared XP award path (also used by AchievementService)
        - AchievementService: optional follow-up badge pass
        - EventBus: lesson.completed, course.completed, user.leveled_up

    Public Methods:
        - complete_lesson() -> Record a completion and cascade its effects
        - get_lesson_completion() -> One completion record or None
        - get_completed_lessons() -> Completed lesson ids within a course
        - get_course_progress() -> Course progress record or None
        - update_current_lesson() -> Move the course pointer
        - update_streak() -> Daily activity streak bookkeeping
    """

    def __init__(
        self,
        store: ProgressStore,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        achievement_service: Optional[AchievementService] = None,
        xp_awarder: Optional[XpAwarder] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFn] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._achievements = achievement_service
        self._xp = xp_awarder or XpAwarder.from_config(store, config_manager, logger)
        self._retry = retry_policy or RetryPolicy.from_config(sleep=sleep)
        self._sleep = sleep
        self._clock: Clock = clock or _utcnow
        self._rules = LessonXpRules.from_config(config_manager)
        self._lookup_attempts = int(Config.PROGRESS_LOOKUP_ATTEMPTS)
        self._lookup_backoff_ms = int(Config.PROGRESS_LOOKUP_BACKOFF_MS)

        self.log.info(
            "ProgressService initialized",
            extra={
                "quiz_passing_score": self._rules.quiz_passing_score,
                "course_completion_bonus": self._rules.course_completion_bonus,
                "badge_pass_enabled": achievement_service is not None,
            },
        )

    @property
    def rules(self) -> LessonXpRules:
        return self._rules

    # ========================================================================
    # PUBLIC API - Completion
    # ========================================================================

    async def complete_lesson(
        self,
        user_id: str,
        lesson_id: str,
        course_id: str,
        score: Optional[int] = None,
        time_spent_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Record that `user_id` finished `lesson_id` in `course_id`.

        Steps:
            1. Duplicate completion -> success with zero XP, no writes
            2. Validate lesson, course ownership, score and user
            3. Compute XP; a quiz without a passing score is rejected
            4. Insert the completion (a uniqueness race is a duplicate)
            5. Award lesson XP and bump `lessons_completed`
            6. Recount course progress from the completion records; the call
               whose conditional write stamps `completed_at` awards the
               completion bonus and bumps `courses_completed`
            7. Streak update and badge pass (failures never fail the call)

        Returns:
            {
                "success": bool,
                "xp_earned": int,           # lesson XP + course bonus
                "new_level": int,           # includes badge XP
                "old_level": int,
                "leveled_up": bool,
                "course_complete": bool,
                "already_completed": bool,
                "badges_earned": list[dict],
                "error": Optional[str],
                "error_code": Optional[str],
            }

        Example:
            >>> result = await progress_service.complete_lesson(
            ...     user_id="u-1", lesson_id="l-3", course_id="c-1", score=85
            ... )
            >>> result["xp_earned"]
            20
        """
        async with LogContext(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            operation="complete_lesson",
            component="progression",
        ):
            try:
                return await self._complete_lesson(
                    user_id, lesson_id, course_id, score, time_spent_seconds
                )

            except AcademyDomainException as exc:
                self.log.info(
                    f"Lesson completion rejected: {exc.message}",
                    extra={
                        "user_id": user_id,
                        "lesson_id": lesson_id,
                        "course_id": course_id,
                        "error_code": exc.error_code,
                    },
                )
                return self._failure(exc.message, exc.error_code)

            except AcademyInfrastructureException as exc:
                self.log_error(
                    "complete_lesson",
                    exc,
                    user_id=user_id,
                    lesson_id=lesson_id,
                    course_id=course_id,
                )
                return self._failure(exc.message, exc.error_code)

            except DomainValidationError as exc:
                error = ValidationError.from_domain(exc)
                self.log.warning(
                    f"Lesson completion hit invalid data: {error.message}",
                    extra={
                        "user_id": user_id,
                        "lesson_id": lesson_id,
                        "course_id": course_id,
                        "error_code": error.error_code,
                    },
                )
                return self._failure(error.message, error.error_code)

    async def _complete_lesson(
        self,
        user_id: str,
        lesson_id: str,
        course_id: str,
        score: Optional[int],
        time_spent_seconds: Optional[int],
    ) -> Dict[str, Any]:
        self.log_operation(
            "complete_lesson",
            user_id=user_id,
            lesson_id=lesson_id,
            course_id=course_id,
            score=score,
        )

        # 1. Idempotency
        existing = await self._store.get_completion(user_id, lesson_id)
        if existing is not None:
            self.log.info(
                "Lesson already completed; no changes",
                extra={"user_id": user_id, "lesson_id": lesson_id},
            )
            return await self._duplicate_result(user_id, course_id)

        # 2. Reference and input validation
        lesson = await self._store.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        if lesson.course_id != course_id:
            raise MismatchedCourseError(lesson_id, lesson.course_id, course_id)
        if score is not None:
            self.validate_range(score, "score", 0, 100)
        if time_spent_seconds is not None:
            self.validate_non_negative_int(time_spent_seconds, "time_spent_seconds")

        user = await self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        # 3. XP and quiz gating
        if lesson.lesson_type is LessonType.QUIZ and not self._rules.is_quiz_passed(score):
            raise QuizNotPassedError(lesson_id, score, self._rules.quiz_passing_score)

        lesson_xp = self._rules.xp_for_lesson(lesson.lesson_type, score)
        old_level = self._xp.level_for(user.total_xp)
        now = self._clock()

        # 4. Completion record; the uniqueness constraint decides races
        record = CompletionRecord(
            user_id=user_id,
            lesson_id=lesson_id,
            course_id=course_id,
            xp_earned=lesson_xp,
            completed_at=now,
            score_percentage=score,
            time_spent_seconds=time_spent_seconds,
        )
        try:
            await self._store.insert_completion(record)
        except DuplicateRecordError:
            self.log.info(
                "Concurrent completion detected; treating as already completed",
                extra={"user_id": user_id, "lesson_id": lesson_id},
            )
            return await self._duplicate_result(user_id, course_id)

        try:
            return await self._apply_completion(
                user_id, lesson_id, course_id, lesson_xp, old_level, score, now
            )
        except _HANDLED_ERRORS as exc:
            self.log.error(
                "Completion recorded but follow-up writes failed",
                extra={
                    "user_id": user_id,
                    "lesson_id": lesson_id,
                    "course_id": course_id,
                    "soft_inconsistency": True,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise

    async def _apply_completion(
        self,
        user_id: str,
        lesson_id: str,
        course_id: str,
        lesson_xp: int,
        old_level: int,
        score: Optional[int],
        now: datetime,
    ) -> Dict[str, Any]:
        context = {"lesson_id": lesson_id, "course_id": course_id}

        # 5. Lesson XP
        award = await self._xp.award(user_id, lesson_xp, reason="lesson_completed", context=context)
        if not award.success:
            return self._failure(award.error or "Failed to award XP", "XP_AWARD_FAILED")
        await self._store.increment_user_counter(user_id, "lessons_completed")

        # 6. Course progress, rolled up from the completion records
        progress = await retry_until_found(
            lambda: self._store.get_course_progress(user_id, course_id),
            attempts=self._lookup_attempts,
            initial_backoff_ms=self._lookup_backoff_ms,
            operation_name="progress.get_course_progress",
            context={"user_id": user_id, "course_id": course_id},
            sleep=self._sleep,
        )
        if progress is None:
            raise NotEnrolledError(user_id, course_id)
        if progress.total_lessons <= 0:
            raise InvalidCourseError(course_id, "course has no lessons")

        completed_ids = await self._store.list_completed_lesson_ids(user_id, course_id)
        updated = progress.with_completed_lessons(len(completed_ids), lesson_id, now)
        await self._store.save_course_progress(updated)

        xp_earned = lesson_xp

        # 7. Course completion cascade; only the caller that stamps completed_at pays out
        if updated.is_complete and await self._store.mark_course_completed(
            user_id, course_id, now
        ):
            bonus = self._rules.course_completion_bonus
            bonus_award = await self._xp.award(
                user_id, bonus, reason="course_completed", context=context
            )
            if not bonus_award.success:
                return self._failure(
                    bonus_award.error or "Failed to award course bonus", "XP_AWARD_FAILED"
                )
            await self._store.increment_user_counter(user_id, "courses_completed")
            xp_earned += bonus

            self.log.info(
                "Course completed",
                extra={"user_id": user_id, "course_id": course_id, "bonus_xp": bonus},
            )
            await self.emit_event(
                EventNames.COURSE_COMPLETED,
                {
                    "user_id": user_id,
                    "course_id": course_id,
                    "bonus_xp": bonus,
                    "completed_at": now,
                },
            )

        # 8. Non-fatal follow-ups
        await self._update_streak_safely(user_id, now.date())
        badges = await self._run_badge_pass(user_id)
        new_level = await self._current_level(user_id, fallback=old_level)
        leveled_up = new_level > old_level

        if leveled_up:
            await self.emit_event(
                EventNames.USER_LEVELED_UP,
                {"user_id": user_id, "old_level": old_level, "new_level": new_level},
            )

        await self.emit_event(
            EventNames.LESSON_COMPLETED,
            {
                "user_id": user_id,
                "lesson_id": lesson_id,
                "course_id": course_id,
                "xp_earned": xp_earned,
                "score": score,
                "course_complete": updated.is_complete,
            },
        )

        self.log.info(
            f"Lesson completed: +{xp_earned} XP",
            extra={
                "user_id": user_id,
                "lesson_id": lesson_id,
                "course_id": course_id,
                "xp_earned": xp_earned,
                "old_level": old_level,
                "new_level": new_level,
                "course_complete": updated.is_complete,
                "badges_awarded": len(badges),
            },
        )

        return {
            "success": True,
            "xp_earned": xp_earned,
            "new_level": new_level,
            "old_level": old_level,
            "leveled_up": leveled_up,
            "course_complete": updated.is_complete,
            "already_completed": False,
            "badges_earned": badges,
            "error": None,
            "error_code": None,
        }

    # ========================================================================
    # PUBLIC API - Reads and pointer
    # ========================================================================

    async def get_lesson_completion(
        self, user_id: str, lesson_id: str
    ) -> Optional[CompletionRecord]:
        try:
            return await self._store.get_completion(user_id, lesson_id)
        except _HANDLED_ERRORS as exc:
            self.log_error("get_lesson_completion", exc, user_id=user_id, lesson_id=lesson_id)
            return None

    async def get_completed_lessons(self, user_id: str, course_id: str) -> List[str]:
        try:
            return await self._store.list_completed_lesson_ids(user_id, course_id)
        except _HANDLED_ERRORS as exc:
            self.log_error("get_completed_lessons", exc, user_id=user_id, course_id=course_id)
            return []

    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> Optional[CourseProgress]:
        """
        Progress for (user, course), retrying network-class store failures.

        Returns None when the learner is not enrolled or the store stays
        unavailable.
        """
        try:
            return await self._retry.execute(
                lambda: self._store.get_course_progress(user_id, course_id),
                operation_name="progress.get_course_progress",
                context={"user_id": user_id, "course_id": course_id},
            )
        except _HANDLED_ERRORS as exc:
            self.log_error("get_course_progress", exc, user_id=user_id, course_id=course_id)
            return None

    async def update_current_lesson(
        self, user_id: str, course_id: str, lesson_id: str
    ) -> bool:
        """
        Point the learner's course progress at `lesson_id`.

        No write when the pointer already matches. `started_at` is set on the
        first move only. Returns False when not enrolled or on store failure.
        """
        try:
            progress = await self._store.get_course_progress(user_id, course_id)
            if progress is None:
                self.log.info(
                    "Cannot move lesson pointer: not enrolled",
                    extra={"user_id": user_id, "course_id": course_id},
                )
                return False

            if progress.current_lesson_id == lesson_id and progress.started_at is not None:
                return True

            await self._store.save_course_progress(
                progress.with_current_lesson(lesson_id, self._clock())
            )
            return True

        except _HANDLED_ERRORS as exc:
            self.log_error(
                "update_current_lesson",
                exc,
                user_id=user_id,
                course_id=course_id,
                lesson_id=lesson_id,
            )
            return False

    # ========================================================================
    # PUBLIC API - Streaks
    # ========================================================================

    async def update_streak(
        self, user_id: str, today: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Record activity for `today` (UTC date of the clock by default).

        - last activity yesterday: streak + 1
        - last activity today: unchanged
        - otherwise: streak restarts at 1

        Returns:
            {"success", "current_streak", "longest_streak", "changed", "error"}
        """
        today = today or self._clock().date()
        try:
            return await self._update_streak(user_id, today)
        except _HANDLED_ERRORS as exc:
            self.log_error("update_streak", exc, user_id=user_id)
            return {
                "success": False,
                "current_streak": 0,
                "longest_streak": 0,
                "changed": False,
                "error": str(exc),
            }

    async def _update_streak(self, user_id: str, today: date) -> Dict[str, Any]:
        user = await self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        last = user.last_activity_date
        if last == today:
            return {
                "success": True,
                "current_streak": user.current_streak,
                "longest_streak": user.longest_streak,
                "changed": False,
                "error": None,
            }

        if last is not None and last == today - timedelta(days=1):
            current = user.current_streak + 1
        else:
            current = 1
        longest = max(user.longest_streak, current)

        await self._store.update_user_streak(user_id, current, longest, today)
        self.log.debug(
            "Streak updated",
            extra={"user_id": user_id, "current_streak": current, "longest_streak": longest},
        )
        return {
            "success": True,
            "current_streak": current,
            "longest_streak": longest,
            "changed": True,
            "error": None,
        }

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _duplicate_result(self, user_id: str, course_id: str) -> Dict[str, Any]:
        user = await self._store.get_user(user_id)
        level = self._xp.level_for(user.total_xp) if user is not None else 1
        progress = await self._store.get_course_progress(user_id, course_id)
        return {
            "success": True,
            "xp_earned": 0,
            "new_level": level,
            "old_level": level,
            "leveled_up": False,
            "course_complete": progress is not None and progress.is_complete,
            "already_completed": True,
            "badges_earned": [],
            "error": None,
            "error_code": None,
        }

    @staticmethod
    def _failure(error: str, error_code: Optional[str]) -> Dict[str, Any]:
        return {
            "success": False,
            "xp_earned": 0,
            "new_level": None,
            "old_level": None,
            "leveled_up": False,
            "course_complete": False,
            "already_completed": False,
            "badges_earned": [],
            "error": error,
            "error_code": error_code,
        }

    async def _current_level(self, user_id: str, fallback: int) -> int:
        try:
            user = await self._store.get_user(user_id)
        except AcademyInfrastructureException as exc:
            self.log_error("read_level", exc, user_id=user_id)
            return fallback
        if user is None:
            return fallback
        return self._xp.level_for(user.total_xp)

    async def _update_streak_safely(self, user_id: str, today: date) -> None:
        try:
            await self._update_streak(user_id, today)
        except _HANDLED_ERRORS as exc:
            self.log.warning(
                "Streak update failed; completion unaffected",
                extra={"user_id": user_id, "error_type": type(exc).__name__, "error": str(exc)},
            )

    async def _run_badge_pass(self, user_id: str) -> List[Dict[str, Any]]:
        if self._achievements is None:
            return []
        try:
            return await self._achievements.check_and_award_badges(user_id)
        except _HANDLED_ERRORS as exc:
            self.log.warning(
                "Badge pass failed; completion unaffected",
                extra={"user_id": user_id, "error_type": type(exc).__name__, "error": str(exc)},
            )
            return []

