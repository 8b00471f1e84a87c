"""
Repositories for the Academy schema.

One repository per table, each a thin `BaseRepository` subclass with the
query helpers the SQL progress store needs. Repositories never open
sessions or commit.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

from sqlalchemy import func, select, update

from academy.core.logging.logger import get_logger
from academy.database.models import (
    Achievement,
    LeaderboardCache,
    Lesson,
    LessonCompletion,
    User,
    UserAchievement,
    UserProgress,
)
from academy.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


# ============================================================================
# Users
# ============================================================================


class UserRepository(BaseRepository[User]):
    def __init__(self) -> None:
        super().__init__(User, get_logger(f"{__name__}.UserRepository"))

    async def get(
        self, session: AsyncSession, user_id: str, for_update: bool = False
    ) -> Optional[User]:
        return await self.find_one_where(session, User.id == user_id, for_update=for_update)

    async def add_xp(self, session: AsyncSession, user_id: str, amount: int) -> Optional[int]:
        """
        `total_xp = total_xp + amount` in one statement.

        Returns the new total, or None when the user does not exist.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(total_xp=User.total_xp + amount)
            .returning(User.total_xp)
        )
        result = await session.execute(stmt)
        total = result.scalar_one_or_none()

        self.log.debug(
            "Repository.add_xp: User",
            extra={"model": "User", "amount": amount, "found": total is not None},
        )
        return int(total) if total is not None else None

    async def increment_counter(
        self, session: AsyncSession, user_id: str, counter: str, amount: int
    ) -> int:
        column = getattr(User, counter)
        result = await session.execute(
            update(User).where(User.id == user_id).values({column: column + amount})
        )
        return int(result.rowcount or 0)

    async def list_with_xp(self, session: AsyncSession) -> List[User]:
        return await self.find_many_where(
            session,
            User.total_xp > 0,
            order_by=[User.total_xp.desc(), User.created_at.asc(), User.id.asc()],
        )


# ============================================================================
# Lessons and completions
# ============================================================================


class LessonRepository(BaseRepository[Lesson]):
    def __init__(self) -> None:
        super().__init__(Lesson, get_logger(f"{__name__}.LessonRepository"))


class LessonCompletionRepository(BaseRepository[LessonCompletion]):
    def __init__(self) -> None:
        super().__init__(LessonCompletion, get_logger(f"{__name__}.LessonCompletionRepository"))

    async def get(
        self, session: AsyncSession, user_id: str, lesson_id: str
    ) -> Optional[LessonCompletion]:
        return await self.find_one_where(
            session,
            LessonCompletion.user_id == user_id,
            LessonCompletion.lesson_id == lesson_id,
        )

    async def lesson_ids_for_course(
        self, session: AsyncSession, user_id: str, course_id: str
    ) -> List[str]:
        stmt = (
            select(LessonCompletion.lesson_id)
            .where(
                LessonCompletion.user_id == user_id,
                LessonCompletion.course_id == course_id,
            )
            .order_by(LessonCompletion.completed_at.asc(), LessonCompletion.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def since(
        self, session: AsyncSession, user_id: str, since: datetime
    ) -> List[LessonCompletion]:
        return await self.find_many_where(
            session,
            LessonCompletion.user_id == user_id,
            LessonCompletion.completed_at >= since,
            order_by=[LessonCompletion.completed_at.asc()],
        )

    async def xp_totals_since(self, session: AsyncSession, since: datetime) -> Dict[str, int]:
        total = func.sum(LessonCompletion.xp_earned)
        stmt = (
            select(LessonCompletion.user_id, total)
            .where(LessonCompletion.completed_at >= since)
            .group_by(LessonCompletion.user_id)
            .having(total > 0)
        )
        result = await session.execute(stmt)
        totals = {user_id: int(xp) for user_id, xp in result.all()}

        self.log.debug(
            "Repository.xp_totals_since: LessonCompletion",
            extra={"model": "LessonCompletion", "users": len(totals)},
        )
        return totals


# ============================================================================
# Course progress
# ============================================================================


class UserProgressRepository(BaseRepository[UserProgress]):
    def __init__(self) -> None:
        super().__init__(UserProgress, get_logger(f"{__name__}.UserProgressRepository"))

    async def get(
        self, session: AsyncSession, user_id: str, course_id: str, for_update: bool = False
    ) -> Optional[UserProgress]:
        return await self.find_one_where(
            session,
            UserProgress.user_id == user_id,
            UserProgress.course_id == course_id,
            for_update=for_update,
        )

    async def mark_completed(
        self, session: AsyncSession, user_id: str, course_id: str, completed_at: datetime
    ) -> bool:
        """
        Set `completed_at` where it is still NULL.

        Returns True only for the statement that changed the row.
        """
        result = await session.execute(
            update(UserProgress)
            .where(
                UserProgress.user_id == user_id,
                UserProgress.course_id == course_id,
                UserProgress.completed_at.is_(None),
            )
            .values(
                completed_at=completed_at,
                progress_percentage=100,
                lessons_completed=UserProgress.total_lessons,
            )
        )
        marked = (result.rowcount or 0) == 1

        self.log.debug(
            "Repository.mark_completed: UserProgress",
            extra={"model": "UserProgress", "marked": marked},
        )
        return marked


# ============================================================================
# Achievements
# ============================================================================


class AchievementRepository(BaseRepository[Achievement]):
    def __init__(self) -> None:
        super().__init__(Achievement, get_logger(f"{__name__}.AchievementRepository"))

    async def list_active(self, session: AsyncSession) -> List[Achievement]:
        return await self.find_many_where(
            session,
            Achievement.is_active.is_(True),
            order_by=[Achievement.id.asc()],
        )

    async def increment_times_earned(self, session: AsyncSession, achievement_id: str) -> None:
        await session.execute(
            update(Achievement)
            .where(Achievement.id == achievement_id)
            .values(times_earned=Achievement.times_earned + 1)
        )


class UserAchievementRepository(BaseRepository[UserAchievement]):
    def __init__(self) -> None:
        super().__init__(UserAchievement, get_logger(f"{__name__}.UserAchievementRepository"))

    async def for_user(self, session: AsyncSession, user_id: str) -> List[UserAchievement]:
        return await self.find_many_where(
            session,
            UserAchievement.user_id == user_id,
            order_by=[UserAchievement.earned_at.desc(), UserAchievement.achievement_id.asc()],
        )


# ============================================================================
# Leaderboard
# ============================================================================


class LeaderboardRepository(BaseRepository[LeaderboardCache]):
    def __init__(self) -> None:
        super().__init__(LeaderboardCache, get_logger(f"{__name__}.LeaderboardRepository"))

    async def page(self, session: AsyncSession, limit: int, offset: int) -> List[LeaderboardCache]:
        return await self.find_many_where(
            session,
            order_by=[LeaderboardCache.rank.asc(), LeaderboardCache.id.asc()],
            limit=limit,
            offset=offset,
        )
