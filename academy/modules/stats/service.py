"""
Stats Service

Read-only progress statistics: the level summary shown on a learner's
profile and the per-day XP history behind the progress chart.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from academy.core.exceptions import AcademyInfrastructureException
from academy.modules.progression.xp_award import xp_curve_from_config
from academy.modules.progression.xp_model import (
    level_from_xp,
    level_progress,
    xp_for_level,
    xp_to_next_level,
)
from academy.modules.shared.base_service import BaseService
from academy.modules.shared.exceptions import AcademyDomainException, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from academy.core.config.manager import ConfigManager
    from academy.core.event.bus import EventBus
    from academy.modules.shared.store import ProgressStore

Clock = Callable[[], datetime]

MAX_HISTORY_DAYS = 365


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatsService(BaseService):
    """
    Public Methods:
        - get_level_summary() -> XP, level and progress through the level
        - get_xp_history() -> Daily and cumulative XP for a trailing window
    """

    def __init__(
        self,
        store: ProgressStore,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._clock: Clock = clock or _utcnow
        self._base_xp, self._exponent = xp_curve_from_config(config_manager)

    async def get_level_summary(self, user_id: str) -> Dict[str, Any]:
        """
        Returns:
            {
                "success": bool,
                "total_xp": int,
                "level": int,
                "current_level_xp": int,   # threshold of the current level
                "next_level_xp": int,      # threshold of the next level
                "xp_to_next_level": int,
                "level_progress": float,   # 0..100
                "error": Optional[str],
            }
        """
        self.log_operation("get_level_summary", user_id=user_id)

        try:
            user = await self._store.get_user(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
        except (AcademyDomainException, AcademyInfrastructureException) as exc:
            self.log_error("get_level_summary", exc, user_id=user_id)
            return {"success": False, "error": exc.message}

        curve = (self._base_xp, self._exponent)
        level = level_from_xp(user.total_xp, *curve)
        return {
            "success": True,
            "total_xp": user.total_xp,
            "level": level,
            "current_level_xp": xp_for_level(level, *curve),
            "next_level_xp": xp_for_level(level + 1, *curve),
            "xp_to_next_level": xp_to_next_level(user.total_xp, level, *curve),
            "level_progress": round(level_progress(user.total_xp, level, *curve), 1),
            "error": None,
        }

    async def get_xp_history(self, user_id: str, days: int = 30) -> Dict[str, Any]:
        """
        XP earned per UTC day over the last `days` days, today included.

        Days without completions are present with 0 XP. `cumulative_xp` is a
        running total within the window, not the lifetime total.
        """
        self.log_operation("get_xp_history", user_id=user_id, days=days)

        try:
            self.validate_range(days, "days", 1, MAX_HISTORY_DAYS)
            today = self._clock().date()
            first_day = today - timedelta(days=days - 1)
            since = datetime(first_day.year, first_day.month, first_day.day, tzinfo=timezone.utc)
            completions = await self._store.list_completions_since(user_id, since)
        except (AcademyDomainException, AcademyInfrastructureException) as exc:
            self.log_error("get_xp_history", exc, user_id=user_id, days=days)
            return {"success": False, "history": [], "total_xp": 0, "error": exc.message}

        per_day: Dict[date, int] = defaultdict(int)
        for record in completions:
            per_day[record.completed_at.astimezone(timezone.utc).date()] += record.xp_earned

        history = []
        running = 0
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            earned = per_day.get(day, 0)
            running += earned
            history.append(
                {"date": day.isoformat(), "xp_earned": earned, "cumulative_xp": running}
            )

        return {"success": True, "history": history, "total_xp": running, "error": None}
