"""
SQL-backed ProgressStore.

Purpose
-------
Implements `ProgressStore` over SQLAlchemy 2.0 async sessions supplied by a
`DatabaseService`. Rows are mapped to domain value objects at the boundary;
services never see ORM instances.

Error translation
-----------------
- `IntegrityError` on the completion and user-achievement inserts becomes
  `DuplicateRecordError`.
- `OperationalError` / other `DBAPIError` becomes `StoreUnavailableError`
  (retryable by read paths).
- Any other `SQLAlchemyError` becomes `StoreError`.
- A row that breaks a domain invariant (unknown lesson type) becomes
  `ValidationError`. Badge rows are lenient: an unknown rarity reads as
  common and an otherwise invalid definition is skipped with a warning.

Time handling
-------------
Datetimes are written in UTC. SQLite hands back naive values; they are
read as UTC.

Usage
-----
    database = DatabaseService("postgresql+asyncpg://...")
    await database.initialize()
    store = SqlAlchemyProgressStore(database)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from academy.core.database.service import DatabaseService
from academy.core.exceptions import (
    DuplicateRecordError,
    StoreError,
    StoreUnavailableError,
)
from academy.core.logging.logger import get_logger
from academy.database.models import (
    Achievement,
    Course,
    LeaderboardCache,
    Lesson,
    LessonCompletion,
    User,
    UserAchievement,
    UserProgress,
)
from academy.database.repositories import (
    AchievementRepository,
    LeaderboardRepository,
    LessonCompletionRepository,
    LessonRepository,
    UserAchievementRepository,
    UserProgressRepository,
    UserRepository,
)
from academy.domain.models.achievement import (
    DEFAULT_BADGE_XP_REWARD,
    AchievementDefinition,
    Rarity,
)
from academy.domain.models.achievement import UserAchievement as UserAchievementRecord
from academy.domain.models.base import DomainValidationError
from academy.domain.models.leaderboard import LeaderboardEntry
from academy.domain.models.progress import (
    CompletionRecord,
    CourseProgress,
    UserAggregate,
)
from academy.domain.models.progress import Lesson as LessonRef
from academy.modules.progression.xp_model import level_from_xp
from academy.modules.shared.exceptions import ValidationError
from academy.modules.shared.store import USER_COUNTERS, ProgressStore

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlAlchemyProgressStore(ProgressStore):
    """
    ProgressStore over one `DatabaseService`.

    Every method runs in its own transaction. `award_xp` adds XP with a
    single UPDATE and rewrites the cached level in the same transaction.
    """

    def __init__(
        self,
        database: DatabaseService,
        *,
        level_for: Callable[[int], int] = level_from_xp,
        default_badge_xp: int = DEFAULT_BADGE_XP_REWARD,
    ) -> None:
        self._db = database
        self._level_for = level_for
        self._default_badge_xp = default_badge_xp

        self._users = UserRepository()
        self._lessons = LessonRepository()
        self._completions = LessonCompletionRepository()
        self._progress = UserProgressRepository()
        self._achievements = AchievementRepository()
        self._user_achievements = UserAchievementRepository()
        self._leaderboard = LeaderboardRepository()

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as exc:
            raise StoreError(operation, exc) from exc
        except DBAPIError as exc:
            logger.warning(
                "Store unavailable",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise StoreUnavailableError(operation, exc) from exc
        except SQLAlchemyError as exc:
            raise StoreError(operation, exc) from exc
        except DomainValidationError as exc:
            logger.warning(
                "Stored row failed validation",
                extra={"operation": operation, "field": exc.field, "error": str(exc)},
            )
            raise ValidationError.from_domain(exc) from exc

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #

    async def get_user(self, user_id: str) -> Optional[UserAggregate]:
        async with self._guard("store.get_user"):
            async with self._db.get_session() as session:
                row = await self._users.get(session, user_id)
                return self._to_user(row) if row is not None else None

    async def award_xp(self, user_id: str, amount: int) -> int:
        async with self._guard("store.award_xp"):
            async with self._db.get_transaction() as session:
                total = await self._users.add_xp(session, user_id, amount)
                if total is None:
                    raise StoreError("store.award_xp", message=f"user {user_id} not found")
                row = await self._users.get(session, user_id)
                if row is not None:
                    row.current_level = self._level_for(total)
                return total

    async def set_user_xp(self, user_id: str, total_xp: int, current_level: int) -> None:
        async with self._guard("store.set_user_xp"):
            async with self._db.get_transaction() as session:
                row = await self._users.get(session, user_id, for_update=True)
                if row is None:
                    raise StoreError("store.set_user_xp", message=f"user {user_id} not found")
                row.total_xp = total_xp
                row.current_level = current_level

    async def increment_user_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        if counter not in USER_COUNTERS:
            raise ValueError(f"Unknown user counter: {counter}")
        async with self._guard("store.increment_user_counter"):
            async with self._db.get_transaction() as session:
                await self._users.increment_counter(session, user_id, counter, amount)

    async def update_user_streak(
        self,
        user_id: str,
        current_streak: int,
        longest_streak: int,
        last_activity_date: date,
    ) -> None:
        async with self._guard("store.update_user_streak"):
            async with self._db.get_transaction() as session:
                row = await self._users.get(session, user_id, for_update=True)
                if row is None:
                    raise StoreError(
                        "store.update_user_streak", message=f"user {user_id} not found"
                    )
                row.current_streak = current_streak
                row.longest_streak = longest_streak
                row.last_activity_date = last_activity_date

    async def list_users_with_xp(self) -> List[UserAggregate]:
        async with self._guard("store.list_users_with_xp"):
            async with self._db.get_session() as session:
                rows = await self._users.list_with_xp(session)
                return [self._to_user(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Lessons and completions
    # ------------------------------------------------------------------ #

    async def get_lesson(self, lesson_id: str) -> Optional[LessonRef]:
        async with self._guard("store.get_lesson"):
            async with self._db.get_session() as session:
                row = await self._lessons.find_one_where(session, Lesson.id == lesson_id)
                if row is None:
                    return None
                return LessonRef(
                    lesson_id=row.id,
                    course_id=row.course_id,
                    lesson_type=row.lesson_type,
                    order_index=row.order_index,
                    title=row.title,
                )

    async def get_completion(self, user_id: str, lesson_id: str) -> Optional[CompletionRecord]:
        async with self._guard("store.get_completion"):
            async with self._db.get_session() as session:
                row = await self._completions.get(session, user_id, lesson_id)
                return self._to_completion(row) if row is not None else None

    async def insert_completion(self, record: CompletionRecord) -> None:
        try:
            async with self._guard("store.insert_completion"):
                async with self._db.get_transaction() as session:
                    self._completions.add(
                        session,
                        LessonCompletion(
                            user_id=record.user_id,
                            lesson_id=record.lesson_id,
                            course_id=record.course_id,
                            score_percentage=record.score_percentage,
                            time_spent_seconds=record.time_spent_seconds,
                            xp_earned=record.xp_earned,
                            attempts=record.attempts,
                            completed_at=_as_utc(record.completed_at),
                        ),
                    )
                    await self._completions.flush(session)
        except StoreError as exc:
            if isinstance(exc.original_error, IntegrityError):
                raise DuplicateRecordError(
                    "lesson_completion",
                    {"user_id": record.user_id, "lesson_id": record.lesson_id},
                ) from exc
            raise

    async def list_completed_lesson_ids(self, user_id: str, course_id: str) -> List[str]:
        async with self._guard("store.list_completed_lesson_ids"):
            async with self._db.get_session() as session:
                return await self._completions.lesson_ids_for_course(session, user_id, course_id)

    async def count_perfect_scores(self, user_id: str) -> int:
        async with self._guard("store.count_perfect_scores"):
            async with self._db.get_session() as session:
                return await self._completions.count(
                    session,
                    LessonCompletion.user_id == user_id,
                    LessonCompletion.score_percentage == 100,
                )

    async def list_completions_since(
        self, user_id: str, since: datetime
    ) -> List[CompletionRecord]:
        async with self._guard("store.list_completions_since"):
            async with self._db.get_session() as session:
                rows = await self._completions.since(session, user_id, _as_utc(since))
                return [self._to_completion(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Course progress
    # ------------------------------------------------------------------ #

    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> Optional[CourseProgress]:
        async with self._guard("store.get_course_progress"):
            async with self._db.get_session() as session:
                row = await self._progress.get(session, user_id, course_id)
                if row is None:
                    return None
                return CourseProgress(
                    user_id=row.user_id,
                    course_id=row.course_id,
                    total_lessons=row.total_lessons,
                    lessons_completed=row.lessons_completed,
                    progress_percentage=row.progress_percentage,
                    current_lesson_id=row.current_lesson_id,
                    started_at=_as_utc(row.started_at),
                    last_accessed_at=_as_utc(row.last_accessed_at),
                    completed_at=_as_utc(row.completed_at),
                )

    async def save_course_progress(self, progress: CourseProgress) -> None:
        async with self._guard("store.save_course_progress"):
            async with self._db.get_transaction() as session:
                row = await self._progress.get(
                    session, progress.user_id, progress.course_id, for_update=True
                )
                if row is None:
                    row = self._progress.add(
                        session,
                        UserProgress(user_id=progress.user_id, course_id=progress.course_id),
                    )
                row.total_lessons = progress.total_lessons
                row.lessons_completed = max(row.lessons_completed or 0, progress.lessons_completed)
                row.progress_percentage = max(
                    row.progress_percentage or 0, progress.progress_percentage
                )
                row.current_lesson_id = progress.current_lesson_id
                row.started_at = row.started_at or _as_utc(progress.started_at)
                row.last_accessed_at = _as_utc(progress.last_accessed_at)
                if row.completed_at is None:
                    row.completed_at = _as_utc(progress.completed_at)

    async def mark_course_completed(
        self, user_id: str, course_id: str, completed_at: datetime
    ) -> bool:
        async with self._guard("store.mark_course_completed"):
            async with self._db.get_transaction() as session:
                return await self._progress.mark_completed(
                    session, user_id, course_id, _as_utc(completed_at)
                )

    # ------------------------------------------------------------------ #
    # Achievements
    # ------------------------------------------------------------------ #

    async def list_active_achievements(self) -> List[AchievementDefinition]:
        async with self._guard("store.list_active_achievements"):
            async with self._db.get_session() as session:
                rows = await self._achievements.list_active(session)
                definitions = [self._to_definition(row) for row in rows]
                return [definition for definition in definitions if definition is not None]

    async def get_achievement(self, achievement_id: str) -> Optional[AchievementDefinition]:
        async with self._guard("store.get_achievement"):
            async with self._db.get_session() as session:
                row = await self._achievements.find_one_where(
                    session, Achievement.id == achievement_id
                )
                return self._to_definition(row) if row is not None else None

    async def has_user_achievement(self, user_id: str, achievement_id: str) -> bool:
        async with self._guard("store.has_user_achievement"):
            async with self._db.get_session() as session:
                return await self._user_achievements.exists(
                    session,
                    UserAchievement.user_id == user_id,
                    UserAchievement.achievement_id == achievement_id,
                )

    async def list_user_achievements(self, user_id: str) -> List[UserAchievementRecord]:
        async with self._guard("store.list_user_achievements"):
            async with self._db.get_session() as session:
                rows = await self._user_achievements.for_user(session, user_id)
                return [
                    UserAchievementRecord(
                        user_id=row.user_id,
                        achievement_id=row.achievement_id,
                        earned_at=_as_utc(row.earned_at),
                    )
                    for row in rows
                ]

    async def insert_user_achievement(self, record: UserAchievementRecord) -> None:
        try:
            async with self._guard("store.insert_user_achievement"):
                async with self._db.get_transaction() as session:
                    self._user_achievements.add(
                        session,
                        UserAchievement(
                            user_id=record.user_id,
                            achievement_id=record.achievement_id,
                            earned_at=_as_utc(record.earned_at),
                        ),
                    )
                    await self._user_achievements.flush(session)
        except StoreError as exc:
            if isinstance(exc.original_error, IntegrityError):
                raise DuplicateRecordError(
                    "user_achievement",
                    {"user_id": record.user_id, "achievement_id": record.achievement_id},
                ) from exc
            raise

    async def increment_achievement_earned(self, achievement_id: str) -> None:
        async with self._guard("store.increment_achievement_earned"):
            async with self._db.get_transaction() as session:
                await self._achievements.increment_times_earned(session, achievement_id)

    # ------------------------------------------------------------------ #
    # Leaderboard
    # ------------------------------------------------------------------ #

    async def get_leaderboard_entry(self, user_id: str) -> Optional[LeaderboardEntry]:
        async with self._guard("store.get_leaderboard_entry"):
            async with self._db.get_session() as session:
                row = await self._leaderboard.find_one_where(
                    session, LeaderboardCache.user_id == user_id
                )
                return self._to_entry(row) if row is not None else None

    async def get_leaderboard_entry_at_rank(self, rank: int) -> Optional[LeaderboardEntry]:
        async with self._guard("store.get_leaderboard_entry_at_rank"):
            async with self._db.get_session() as session:
                rows = await self._leaderboard.find_many_where(
                    session, LeaderboardCache.rank == rank, limit=1
                )
                return self._to_entry(rows[0]) if rows else None

    async def count_leaderboard_entries(self) -> int:
        async with self._guard("store.count_leaderboard_entries"):
            async with self._db.get_session() as session:
                return await self._leaderboard.count(session)

    async def list_leaderboard_entries(
        self, limit: int, offset: int = 0
    ) -> List[LeaderboardEntry]:
        async with self._guard("store.list_leaderboard_entries"):
            async with self._db.get_session() as session:
                rows = await self._leaderboard.page(session, limit, offset)
                return [self._to_entry(row) for row in rows]

    async def period_xp_totals(self, since: datetime) -> Dict[str, int]:
        async with self._guard("store.period_xp_totals"):
            async with self._db.get_session() as session:
                return await self._completions.xp_totals_since(session, _as_utc(since))

    async def replace_leaderboard(self, entries: Sequence[LeaderboardEntry]) -> None:
        async with self._guard("store.replace_leaderboard"):
            async with self._db.get_transaction() as session:
                await self._leaderboard.delete_where(session)
                self._leaderboard.add_many(
                    session,
                    [
                        LeaderboardCache(
                            user_id=entry.user_id,
                            rank=entry.rank,
                            total_xp=entry.total_xp,
                            level=entry.level,
                            lessons_completed=entry.lessons_completed,
                            courses_completed=entry.courses_completed,
                            streak_days=entry.streak_days,
                            calculated_at=_as_utc(entry.calculated_at)
                            or datetime.now(timezone.utc),
                        )
                        for entry in entries
                    ],
                )

    # ------------------------------------------------------------------ #
    # Seeding (reference data and enrollment live outside the contract)
    # ------------------------------------------------------------------ #

    async def add_user(
        self, user_id: str, *, username: Optional[str] = None, **fields: Any
    ) -> None:
        async with self._guard("store.add_user"):
            async with self._db.get_transaction() as session:
                self._users.add(session, User(id=user_id, username=username, **fields))

    async def add_course(
        self, course_id: str, lessons: Sequence[LessonRef], *, title: str = ""
    ) -> None:
        async with self._guard("store.add_course"):
            async with self._db.get_transaction() as session:
                session.add(Course(id=course_id, title=title, total_lessons=len(lessons)))
                await session.flush()
                self._lessons.add_many(
                    session,
                    [
                        Lesson(
                            id=lesson.lesson_id,
                            course_id=course_id,
                            title=lesson.title,
                            lesson_type=lesson.lesson_type.value,
                            order_index=lesson.order_index,
                        )
                        for lesson in lessons
                    ],
                )

    async def enroll(self, user_id: str, course_id: str) -> None:
        async with self._guard("store.enroll"):
            async with self._db.get_transaction() as session:
                course = await session.get(Course, course_id)
                if course is None:
                    raise StoreError("store.enroll", message=f"course {course_id} not found")
                self._progress.add(
                    session,
                    UserProgress(
                        user_id=user_id,
                        course_id=course_id,
                        total_lessons=course.total_lessons,
                    ),
                )

    async def add_achievement(self, definition: AchievementDefinition) -> None:
        async with self._guard("store.add_achievement"):
            async with self._db.get_transaction() as session:
                self._achievements.add(
                    session,
                    Achievement(
                        id=definition.achievement_id,
                        name=definition.name,
                        description=definition.description,
                        icon=definition.icon,
                        criteria=definition.criterion.to_dict(),
                        xp_reward=definition.xp_reward,
                        rarity=definition.rarity.value,
                        is_active=definition.is_active,
                        times_earned=definition.times_earned,
                    ),
                )

    # ------------------------------------------------------------------ #
    # Row mapping
    # ------------------------------------------------------------------ #

    @staticmethod
    def _to_user(row: User) -> UserAggregate:
        return UserAggregate(
            user_id=row.id,
            total_xp=row.total_xp,
            current_level=row.current_level,
            lessons_completed=row.lessons_completed,
            courses_completed=row.courses_completed,
            badges_earned=row.badges_earned,
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            last_activity_date=row.last_activity_date,
            created_at=_as_utc(row.created_at),
        )

    @staticmethod
    def _to_completion(row: LessonCompletion) -> CompletionRecord:
        return CompletionRecord(
            user_id=row.user_id,
            lesson_id=row.lesson_id,
            course_id=row.course_id,
            xp_earned=row.xp_earned,
            completed_at=_as_utc(row.completed_at),
            score_percentage=row.score_percentage,
            time_spent_seconds=row.time_spent_seconds,
            attempts=row.attempts,
        )

    def _to_definition(self, row: Achievement) -> Optional[AchievementDefinition]:
        """Map one badge row; rows that break an invariant are logged and skipped."""
        try:
            rarity = Rarity.from_value(row.rarity)
        except DomainValidationError:
            logger.warning(
                "Unknown badge rarity; treating as common",
                extra={"achievement_id": row.id, "rarity": row.rarity},
            )
            rarity = Rarity.COMMON

        try:
            return AchievementDefinition.from_raw(
                achievement_id=row.id,
                name=row.name,
                criteria=row.criteria,
                xp_reward=row.xp_reward,
                description=row.description,
                icon=row.icon,
                rarity=rarity,
                is_active=row.is_active,
                times_earned=row.times_earned,
                default_xp_reward=self._default_badge_xp,
            )
        except DomainValidationError as exc:
            logger.warning(
                "Skipping invalid badge definition",
                extra={"achievement_id": row.id, "field": exc.field, "error": str(exc)},
            )
            return None

    @staticmethod
    def _to_entry(row: LeaderboardCache) -> LeaderboardEntry:
        return LeaderboardEntry(
            rank=row.rank,
            user_id=row.user_id,
            total_xp=row.total_xp,
            level=row.level,
            lessons_completed=row.lessons_completed,
            courses_completed=row.courses_completed,
            streak_days=row.streak_days,
            calculated_at=_as_utc(row.calculated_at),
        )
