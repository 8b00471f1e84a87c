"""
ProgressStore: the persistence contract the engine runs on.

Purpose
-------
Every service receives a `ProgressStore` explicitly; nothing reaches for a
module-level client. Production uses `academy.database.store.SqlAlchemyProgressStore`,
tests use an in-memory fake.

Contract
--------
- Uniqueness on (user, lesson) for completions and on (user, achievement)
  for user achievements. A rejected insert raises `DuplicateRecordError`.
- `award_xp` is the atomic add primitive: one statement that adds to
  `total_xp` and recomputes `current_level`. Stores that cannot do this may
  raise `StoreError`; services then fall back to read-modify-write through
  `get_user` + `set_user_xp`, accepting lost updates under true concurrency.
- Network-class failures surface as `StoreUnavailableError` so read paths
  can retry them.
- Course completion is a conditional write (`mark_course_completed`): of
  several concurrent finishers exactly one sees True.
- At least read-your-writes consistency is assumed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from academy.domain.models.achievement import AchievementDefinition, UserAchievement
from academy.domain.models.leaderboard import LeaderboardEntry
from academy.domain.models.progress import (
    CompletionRecord,
    CourseProgress,
    Lesson,
    UserAggregate,
)

USER_COUNTERS = frozenset({"lessons_completed", "courses_completed", "badges_earned"})


class ProgressStore(ABC):
    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserAggregate]: ...

    @abstractmethod
    async def award_xp(self, user_id: str, amount: int) -> int:
        """Atomically add `amount` XP, recompute the cached level, return the new total."""

    @abstractmethod
    async def set_user_xp(self, user_id: str, total_xp: int, current_level: int) -> None: ...

    @abstractmethod
    async def increment_user_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        """Add `amount` to one of `USER_COUNTERS`."""

    @abstractmethod
    async def update_user_streak(
        self,
        user_id: str,
        current_streak: int,
        longest_streak: int,
        last_activity_date: date,
    ) -> None: ...

    @abstractmethod
    async def list_users_with_xp(self) -> List[UserAggregate]:
        """Users with total_xp > 0, ordered by total_xp desc then created_at asc."""

    # ------------------------------------------------------------------ #
    # Lessons and completions
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def get_lesson(self, lesson_id: str) -> Optional[Lesson]: ...

    @abstractmethod
    async def get_completion(self, user_id: str, lesson_id: str) -> Optional[CompletionRecord]: ...

    @abstractmethod
    async def insert_completion(self, record: CompletionRecord) -> None:
        """Raises DuplicateRecordError when (user, lesson) already exists."""

    @abstractmethod
    async def list_completed_lesson_ids(self, user_id: str, course_id: str) -> List[str]: ...

    @abstractmethod
    async def count_perfect_scores(self, user_id: str) -> int: ...

    @abstractmethod
    async def list_completions_since(
        self, user_id: str, since: datetime
    ) -> List[CompletionRecord]: ...

    # ------------------------------------------------------------------ #
    # Course progress
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> Optional[CourseProgress]: ...

    @abstractmethod
    async def save_course_progress(self, progress: CourseProgress) -> None:
        """
        Persist the rollup. Never lowers `lessons_completed` or
        `progress_percentage`. The first `started_at` and `completed_at` win.
        """

    @abstractmethod
    async def mark_course_completed(
        self, user_id: str, course_id: str, completed_at: datetime
    ) -> bool:
        """
        Stamp `completed_at` only if it is still unset.

        Returns True for the single caller whose write took effect.
        """

    # ------------------------------------------------------------------ #
    # Achievements
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def list_active_achievements(self) -> List[AchievementDefinition]: ...

    @abstractmethod
    async def get_achievement(self, achievement_id: str) -> Optional[AchievementDefinition]: ...

    @abstractmethod
    async def has_user_achievement(self, user_id: str, achievement_id: str) -> bool: ...

    @abstractmethod
    async def list_user_achievements(self, user_id: str) -> List[UserAchievement]:
        """Earned badges for `user_id`, newest first."""

    @abstractmethod
    async def insert_user_achievement(self, record: UserAchievement) -> None:
        """Raises DuplicateRecordError when (user, achievement) already exists."""

    @abstractmethod
    async def increment_achievement_earned(self, achievement_id: str) -> None: ...

    # ------------------------------------------------------------------ #
    # Leaderboard
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def get_leaderboard_entry(self, user_id: str) -> Optional[LeaderboardEntry]: ...

    @abstractmethod
    async def get_leaderboard_entry_at_rank(self, rank: int) -> Optional[LeaderboardEntry]: ...

    @abstractmethod
    async def count_leaderboard_entries(self) -> int: ...

    @abstractmethod
    async def list_leaderboard_entries(
        self, limit: int, offset: int = 0
    ) -> List[LeaderboardEntry]:
        """Cached rows ordered by rank."""

    @abstractmethod
    async def period_xp_totals(self, since: datetime) -> Dict[str, int]:
        """Sum of completion XP per user with completed_at >= since; only users above zero."""

    @abstractmethod
    async def replace_leaderboard(self, entries: Sequence[LeaderboardEntry]) -> None: ...
