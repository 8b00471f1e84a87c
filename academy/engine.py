"""
Academy Engine
==============

Purpose
-------
Wire the Academy services over one injected `ProgressStore` and expose the
engine's public operations from a single object.

Responsibilities
----------------
- Build one `XpAwarder` and share it between the completion recorder and
  the badge evaluator, so both award XP the same way
- Construct ProgressService, AchievementService, LeaderboardService and
  StatsService with the same config, event bus and clock
- Forward the three headline operations: `complete_lesson`,
  `check_and_award_badges`, `get_user_rank`

Non-Responsibilities
--------------------
- Database lifecycle and logging setup (`academy.main.startup` or the caller)

Usage
-----
    database = DatabaseService()
    await database.initialize()

    engine = AcademyEngine.for_database(database, ConfigManager.from_directory("config"))
    result = await engine.complete_lesson("u-1", "l-1", "c-1", score=100)
"""

from __future__ import annotations

import time
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from academy.core.config.manager import ConfigManager
from academy.core.event.bus import EventBus
from academy.core.logging.logger import get_logger
from academy.domain.models.achievement import DEFAULT_BADGE_XP_REWARD
from academy.modules.achievements.service import AchievementService
from academy.modules.leaderboard.service import LeaderboardService
from academy.modules.progression.service import ProgressService
from academy.modules.progression.xp_award import XpAwarder, xp_curve_from_config
from academy.modules.progression.xp_model import level_from_xp
from academy.modules.stats.service import StatsService

if TYPE_CHECKING:
    from logging import Logger

    from academy.core.database.service import DatabaseService
    from academy.modules.shared.store import ProgressStore

logger = get_logger(__name__)


class AcademyEngine:
    """
    Service container for one store.

    Args:
        store: Persistence collaborator shared by every service
        config_manager: Gamification configuration (empty means defaults)
        event_bus: Bus for domain events (a private one is created if omitted)
        sleep: Async sleep used by retries; tests pass a no-op
        clock: UTC clock used for timestamps, streak days and windows
    """

    def __init__(
        self,
        store: ProgressStore,
        config_manager: Optional[ConfigManager] = None,
        event_bus: Optional[EventBus] = None,
        *,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._config = config_manager or ConfigManager()
        self._events = event_bus or EventBus(self._config)
        self._service_init_times: Dict[str, float] = {}

        start = time.perf_counter()
        self._xp_awarder = XpAwarder.from_config(
            store, self._config, get_logger("academy.modules.progression.xp_award")
        )

        self._achievements = self._timed(
            "achievements",
            lambda log: AchievementService(
                store, self._config, self._events, log, xp_awarder=self._xp_awarder, clock=clock
            ),
        )
        self._progress = self._timed(
            "progression",
            lambda log: ProgressService(
                store,
                self._config,
                self._events,
                log,
                achievement_service=self._achievements,
                xp_awarder=self._xp_awarder,
                sleep=sleep,
                clock=clock,
            ),
        )
        self._leaderboard = self._timed(
            "leaderboard",
            lambda log: LeaderboardService(store, self._config, self._events, log, clock=clock),
        )
        self._stats = self._timed(
            "stats",
            lambda log: StatsService(store, self._config, self._events, log, clock=clock),
        )

        logger.info(
            "AcademyEngine initialized",
            extra={
                "store": type(store).__name__,
                "init_ms": round((time.perf_counter() - start) * 1000.0, 2),
            },
        )

    @classmethod
    def for_database(
        cls,
        database: DatabaseService,
        config_manager: Optional[ConfigManager] = None,
        event_bus: Optional[EventBus] = None,
        **kwargs: Any,
    ) -> "AcademyEngine":
        """Engine over a `SqlAlchemyProgressStore` bound to `database`."""
        from academy.database.store import SqlAlchemyProgressStore

        config = config_manager or ConfigManager()
        base_xp, exponent = xp_curve_from_config(config)
        store = SqlAlchemyProgressStore(
            database,
            level_for=partial(level_from_xp, base_xp=base_xp, exponent=exponent),
            default_badge_xp=int(config.get("badges.default_xp_reward", DEFAULT_BADGE_XP_REWARD)),
        )
        return cls(store, config, event_bus, **kwargs)

    def _timed(self, name: str, factory: Callable[["Logger"], Any]) -> Any:
        start = time.perf_counter()
        service = factory(get_logger(f"academy.modules.{name}.service"))
        self._service_init_times[name] = time.perf_counter() - start
        return service

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def store(self) -> ProgressStore:
        return self._store

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def progress(self) -> ProgressService:
        return self._progress

    @property
    def achievements(self) -> AchievementService:
        return self._achievements

    @property
    def leaderboard(self) -> LeaderboardService:
        return self._leaderboard

    @property
    def stats(self) -> StatsService:
        return self._stats

    # ========================================================================
    # Headline operations
    # ========================================================================

    async def complete_lesson(
        self,
        user_id: str,
        lesson_id: str,
        course_id: str,
        score: Optional[int] = None,
        time_spent_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self._progress.complete_lesson(
            user_id, lesson_id, course_id, score=score, time_spent_seconds=time_spent_seconds
        )

    async def check_and_award_badges(self, user_id: str) -> List[Dict[str, Any]]:
        return await self._achievements.check_and_award_badges(user_id)

    async def get_user_rank(self, user_id: str, timeframe: str = "all") -> Dict[str, Any]:
        return await self._leaderboard.get_user_rank(user_id, timeframe)

    # ========================================================================
    # Observability
    # ========================================================================

    def get_health(self) -> Dict[str, Any]:
        return {
            "store": type(self._store).__name__,
            "services": sorted(self._service_init_times),
            "service_init_ms": {
                name: round(seconds * 1000.0, 3)
                for name, seconds in self._service_init_times.items()
            },
            "event_listeners": self._events.get_listener_count(),
            "config": self._config.health_snapshot(),
        }
