"""
Pytest Configuration and Fixtures for Academy Tests
===================================================

Purpose
-------
Centralized fixtures for the Academy test suite: an in-memory
`ProgressStore`, a fixed UTC clock, configuration, the event bus and the
services wired over them.

Responsibilities
----------------
- In-memory store with seeding helpers and failure injection
- Deterministic clock and no-op sleep for retry paths
- Service and engine fixtures sharing one store, bus and clock

Non-Responsibilities
--------------------
- Database fixtures (see tests/integration)
- Test implementation (delegated to test files)

Architecture Notes
------------------
- Unit tests run against `FakeProgressStore` (fast, isolated)
- Integration tests run against SQLite through `SqlAlchemyProgressStore`
- Every fixture is function-scoped: each test gets a clean slate
"""

from __future__ import annotations

import dataclasses
import os
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from academy.core.config.manager import ConfigManager
from academy.core.event.bus import EventBus
from academy.core.exceptions import DuplicateRecordError
from academy.core.logging.logger import get_logger
from academy.domain.models.achievement import (
    AchievementDefinition,
    UserAchievement,
)
from academy.domain.models.leaderboard import LeaderboardEntry
from academy.domain.models.progress import (
    CompletionRecord,
    CourseProgress,
    Lesson,
    LessonType,
    UserAggregate,
)
from academy.engine import AcademyEngine
from academy.modules.achievements.service import AchievementService
from academy.modules.leaderboard.service import LeaderboardService
from academy.modules.progression.service import ProgressService
from academy.modules.progression.xp_award import XpAwarder
from academy.modules.progression.xp_model import level_from_xp
from academy.modules.shared.store import USER_COUNTERS, ProgressStore
from academy.modules.stats.service import StatsService

CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["TESTING"] = "true"
    os.environ["LOG_LEVEL"] = "DEBUG"


# ============================================================================
# IN-MEMORY STORE
# ============================================================================


class FakeProgressStore(ProgressStore):
    """
    Dictionary-backed `ProgressStore`.

    Failure injection:
        failures["award_xp"] = StoreError("store.award_xp")   # every call
        failures["get_user"] = [StoreUnavailableError(...)]    # next call only

    `atomic_xp = False` makes `award_xp` raise NotImplementedError, the
    signal for stores without an atomic add. `hidden_progress_reads = n`
    makes the next n course-progress reads return None.
    """

    def __init__(self) -> None:
        self.users: Dict[str, UserAggregate] = {}
        self.lessons: Dict[str, Lesson] = {}
        self.completions: Dict[Tuple[str, str], CompletionRecord] = {}
        self.progress: Dict[Tuple[str, str], CourseProgress] = {}
        self.achievements: Dict[str, AchievementDefinition] = {}
        self.user_achievements: Dict[Tuple[str, str], UserAchievement] = {}
        self.leaderboard: List[LeaderboardEntry] = []

        self.failures: Dict[str, Any] = {}
        self.atomic_xp = True
        self.hidden_progress_reads = 0
        self.calls: Dict[str, int] = {}
        self._signup_seq = 0

    def _enter(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        failure = self.failures.get(operation)
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
        elif failure is not None:
            raise failure

    def call_count(self, operation: str) -> int:
        return self.calls.get(operation, 0)

    # ------------------------------------------------------------------ #
    # Seeding
    # ------------------------------------------------------------------ #

    def add_user(self, user_id: str, **fields: Any) -> UserAggregate:
        self._signup_seq += 1
        signup = datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=self._signup_seq)
        fields.setdefault("created_at", signup)
        user = UserAggregate(user_id=user_id, **fields)
        self.users[user_id] = user
        return user

    def add_course(self, course_id: str, lessons: Sequence[Tuple[str, str]]) -> None:
        for index, (lesson_id, lesson_type) in enumerate(lessons):
            self.lessons[lesson_id] = Lesson(
                lesson_id=lesson_id,
                course_id=course_id,
                lesson_type=LessonType.from_value(lesson_type),
                order_index=index,
            )

    def enroll(self, user_id: str, course_id: str) -> CourseProgress:
        total = sum(1 for lesson in self.lessons.values() if lesson.course_id == course_id)
        progress = CourseProgress(user_id=user_id, course_id=course_id, total_lessons=total)
        self.progress[(user_id, course_id)] = progress
        return progress

    def add_achievement(
        self,
        achievement_id: str,
        criteria: Any,
        *,
        name: Optional[str] = None,
        xp_reward: Optional[int] = 50,
        **fields: Any,
    ) -> AchievementDefinition:
        definition = AchievementDefinition.from_raw(
            achievement_id=achievement_id,
            name=name or achievement_id.replace("-", " ").title(),
            criteria=criteria,
            xp_reward=xp_reward,
            **fields,
        )
        self.achievements[achievement_id] = definition
        return definition

    def add_completion(
        self,
        user_id: str,
        lesson_id: str,
        xp_earned: int,
        completed_at: datetime,
        *,
        course_id: str = "c-seed",
        score: Optional[int] = None,
    ) -> None:
        self.completions[(user_id, lesson_id)] = CompletionRecord(
            user_id=user_id,
            lesson_id=lesson_id,
            course_id=course_id,
            xp_earned=xp_earned,
            completed_at=completed_at,
            score_percentage=score,
        )

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #

    async def get_user(self, user_id: str) -> Optional[UserAggregate]:
        self._enter("get_user")
        return self.users.get(user_id)

    async def award_xp(self, user_id: str, amount: int) -> int:
        self._enter("award_xp")
        if not self.atomic_xp:
            raise NotImplementedError("award_xp")
        user = self.users[user_id]
        total = user.total_xp + amount
        self.users[user_id] = dataclasses.replace(
            user, total_xp=total, current_level=level_from_xp(total)
        )
        return total

    async def set_user_xp(self, user_id: str, total_xp: int, current_level: int) -> None:
        self._enter("set_user_xp")
        self.users[user_id] = dataclasses.replace(
            self.users[user_id], total_xp=total_xp, current_level=current_level
        )

    async def increment_user_counter(self, user_id: str, counter: str, amount: int = 1) -> None:
        self._enter("increment_user_counter")
        assert counter in USER_COUNTERS, counter
        user = self.users[user_id]
        self.users[user_id] = dataclasses.replace(
            user, **{counter: getattr(user, counter) + amount}
        )

    async def update_user_streak(
        self,
        user_id: str,
        current_streak: int,
        longest_streak: int,
        last_activity_date: date,
    ) -> None:
        self._enter("update_user_streak")
        self.users[user_id] = dataclasses.replace(
            self.users[user_id],
            current_streak=current_streak,
            longest_streak=longest_streak,
            last_activity_date=last_activity_date,
        )

    async def list_users_with_xp(self) -> List[UserAggregate]:
        self._enter("list_users_with_xp")
        users = [user for user in self.users.values() if user.total_xp > 0]
        return sorted(users, key=lambda u: (-u.total_xp, u.created_at, u.user_id))

    # ------------------------------------------------------------------ #
    # Lessons and completions
    # ------------------------------------------------------------------ #

    async def get_lesson(self, lesson_id: str) -> Optional[Lesson]:
        self._enter("get_lesson")
        return self.lessons.get(lesson_id)

    async def get_completion(self, user_id: str, lesson_id: str) -> Optional[CompletionRecord]:
        self._enter("get_completion")
        return self.completions.get((user_id, lesson_id))

    async def insert_completion(self, record: CompletionRecord) -> None:
        self._enter("insert_completion")
        key = (record.user_id, record.lesson_id)
        if key in self.completions:
            raise DuplicateRecordError(
                "lesson_completion", {"user_id": record.user_id, "lesson_id": record.lesson_id}
            )
        self.completions[key] = record

    async def list_completed_lesson_ids(self, user_id: str, course_id: str) -> List[str]:
        self._enter("list_completed_lesson_ids")
        records = [
            record
            for (uid, _), record in self.completions.items()
            if uid == user_id and record.course_id == course_id
        ]
        return [record.lesson_id for record in sorted(records, key=lambda r: r.completed_at)]

    async def count_perfect_scores(self, user_id: str) -> int:
        self._enter("count_perfect_scores")
        return sum(
            1
            for (uid, _), record in self.completions.items()
            if uid == user_id and record.is_perfect_score
        )

    async def list_completions_since(
        self, user_id: str, since: datetime
    ) -> List[CompletionRecord]:
        self._enter("list_completions_since")
        records = [
            record
            for (uid, _), record in self.completions.items()
            if uid == user_id and record.completed_at >= since
        ]
        return sorted(records, key=lambda r: r.completed_at)

    # ------------------------------------------------------------------ #
    # Course progress
    # ------------------------------------------------------------------ #

    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> Optional[CourseProgress]:
        self._enter("get_course_progress")
        if self.hidden_progress_reads > 0:
            self.hidden_progress_reads -= 1
            return None
        return self.progress.get((user_id, course_id))

    async def save_course_progress(self, progress: CourseProgress) -> None:
        self._enter("save_course_progress")
        key = (progress.user_id, progress.course_id)
        current = self.progress.get(key)
        if current is not None:
            progress = dataclasses.replace(
                progress,
                lessons_completed=max(current.lessons_completed, progress.lessons_completed),
                progress_percentage=max(
                    current.progress_percentage, progress.progress_percentage
                ),
                started_at=current.started_at or progress.started_at,
                completed_at=current.completed_at or progress.completed_at,
            )
        self.progress[key] = progress

    async def mark_course_completed(
        self, user_id: str, course_id: str, completed_at: datetime
    ) -> bool:
        self._enter("mark_course_completed")
        current = self.progress.get((user_id, course_id))
        if current is None or current.completed_at is not None:
            return False
        self.progress[(user_id, course_id)] = current.mark_completed(completed_at)
        return True

    # ------------------------------------------------------------------ #
    # Achievements
    # ------------------------------------------------------------------ #

    async def list_active_achievements(self) -> List[AchievementDefinition]:
        self._enter("list_active_achievements")
        return [
            definition
            for _, definition in sorted(self.achievements.items())
            if definition.is_active
        ]

    async def get_achievement(self, achievement_id: str) -> Optional[AchievementDefinition]:
        self._enter("get_achievement")
        return self.achievements.get(achievement_id)

    async def has_user_achievement(self, user_id: str, achievement_id: str) -> bool:
        self._enter("has_user_achievement")
        return (user_id, achievement_id) in self.user_achievements

    async def list_user_achievements(self, user_id: str) -> List[UserAchievement]:
        self._enter("list_user_achievements")
        records = [
            record for (uid, _), record in self.user_achievements.items() if uid == user_id
        ]
        return sorted(records, key=lambda r: (-r.earned_at.timestamp(), r.achievement_id))

    async def insert_user_achievement(self, record: UserAchievement) -> None:
        self._enter("insert_user_achievement")
        key = (record.user_id, record.achievement_id)
        if key in self.user_achievements:
            raise DuplicateRecordError(
                "user_achievement",
                {"user_id": record.user_id, "achievement_id": record.achievement_id},
            )
        self.user_achievements[key] = record

    async def increment_achievement_earned(self, achievement_id: str) -> None:
        self._enter("increment_achievement_earned")
        definition = self.achievements[achievement_id]
        self.achievements[achievement_id] = dataclasses.replace(
            definition, times_earned=definition.times_earned + 1
        )

    # ------------------------------------------------------------------ #
    # Leaderboard
    # ------------------------------------------------------------------ #

    async def get_leaderboard_entry(self, user_id: str) -> Optional[LeaderboardEntry]:
        self._enter("get_leaderboard_entry")
        return next((e for e in self.leaderboard if e.user_id == user_id), None)

    async def get_leaderboard_entry_at_rank(self, rank: int) -> Optional[LeaderboardEntry]:
        self._enter("get_leaderboard_entry_at_rank")
        return next((e for e in self.leaderboard if e.rank == rank), None)

    async def count_leaderboard_entries(self) -> int:
        self._enter("count_leaderboard_entries")
        return len(self.leaderboard)

    async def list_leaderboard_entries(
        self, limit: int, offset: int = 0
    ) -> List[LeaderboardEntry]:
        self._enter("list_leaderboard_entries")
        ordered = sorted(self.leaderboard, key=lambda e: e.rank)
        return ordered[offset : offset + limit]

    async def period_xp_totals(self, since: datetime) -> Dict[str, int]:
        self._enter("period_xp_totals")
        totals: Dict[str, int] = {}
        for (user_id, _), record in self.completions.items():
            if record.completed_at >= since:
                totals[user_id] = totals.get(user_id, 0) + record.xp_earned
        return {user_id: xp for user_id, xp in totals.items() if xp > 0}

    async def replace_leaderboard(self, entries: Sequence[LeaderboardEntry]) -> None:
        self._enter("replace_leaderboard")
        self.leaderboard = list(entries)


class FixedClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


def criterion(kind: str, value: Optional[int] = None) -> Dict[str, Any]:
    """Raw criteria payload as stored on a badge definition."""
    raw: Dict[str, Any] = {"type": kind}
    if value is not None:
        raw["value"] = value
    return raw


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def store() -> FakeProgressStore:
    return FakeProgressStore()


@pytest.fixture
def seeded_store(store: FakeProgressStore) -> FakeProgressStore:
    """
    One learner enrolled in two courses.

    c-1: l-1 text, l-2 quiz, l-3 practical, l-4 interactive
    c-2: c2-l1 text, c2-l2 text
    """
    store.add_user("u-1")
    store.add_course(
        "c-1",
        [("l-1", "text"), ("l-2", "quiz"), ("l-3", "practical"), ("l-4", "interactive")],
    )
    store.add_course("c-2", [("c2-l1", "text"), ("c2-l2", "text")])
    store.enroll("u-1", "c-1")
    store.enroll("u-1", "c-2")
    return store


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def sleep(mocker):
    """Async sleep stand-in; retry tests assert on its awaits."""
    return mocker.AsyncMock(return_value=None)


@pytest.fixture
def config_manager() -> ConfigManager:
    return ConfigManager.from_directory(CONFIG_DIR)


@pytest.fixture
def event_bus(config_manager: ConfigManager) -> EventBus:
    return EventBus(config_manager)


@pytest.fixture
def published(mocker, event_bus: EventBus):
    """Spy on `EventBus.publish`; use `event_names(published)` to read it."""
    return mocker.spy(event_bus, "publish")


def event_names(spy) -> List[str]:
    return [call.args[0] for call in spy.call_args_list]


def event_payload(spy, event_name: str) -> Optional[Dict[str, Any]]:
    for call in spy.call_args_list:
        if call.args[0] == event_name:
            return call.args[1]
    return None


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def xp_awarder(seeded_store, config_manager) -> XpAwarder:
    return XpAwarder.from_config(
        seeded_store, config_manager, get_logger("tests.progression.xp_award")
    )


@pytest.fixture
def achievement_service(seeded_store, config_manager, event_bus, xp_awarder, clock):
    return AchievementService(
        seeded_store,
        config_manager,
        event_bus,
        get_logger("tests.achievements"),
        xp_awarder=xp_awarder,
        clock=clock,
    )


@pytest.fixture
def progress_service(
    seeded_store, config_manager, event_bus, achievement_service, xp_awarder, sleep, clock
) -> ProgressService:
    return ProgressService(
        seeded_store,
        config_manager,
        event_bus,
        get_logger("tests.progression"),
        achievement_service=achievement_service,
        xp_awarder=xp_awarder,
        sleep=sleep,
        clock=clock,
    )


@pytest.fixture
def leaderboard_service(store, config_manager, event_bus, clock) -> LeaderboardService:
    return LeaderboardService(
        store, config_manager, event_bus, get_logger("tests.leaderboard"), clock=clock
    )


@pytest.fixture
def stats_service(store, config_manager, event_bus, clock) -> StatsService:
    return StatsService(store, config_manager, event_bus, get_logger("tests.stats"), clock=clock)


@pytest.fixture
def engine(seeded_store, config_manager, event_bus, sleep, clock) -> AcademyEngine:
    return AcademyEngine(seeded_store, config_manager, event_bus, sleep=sleep, clock=clock)
