"""
Leaderboard Service

Purpose
-------
Read-only ranking queries over aggregate XP, plus the job that rebuilds the
all-time leaderboard cache.

Domain
------
- All-time rank from the leaderboard cache
- Weekly and monthly rank from XP earned inside a trailing window
  (sum of completion `xp_earned` with `completed_at >= cutoff`)
- Percentile and "XP to next rank" for a learner
- Top-N listings and a window around a given rank
- Cache rebuild: users with XP, ordered by total XP desc then signup asc

Ranking rules
-------------
- All-time ranks are whatever the cache says (sequential, ties broken by
  signup date at rebuild time).
- Windowed ranks use competition ranking: rank = 1 + number of users with
  strictly more XP in the window, so equal totals share a rank.
- `xp_to_next_rank` is the gap to the nearest user ranked above; a tie with
  that user reads as 0. It is 0 at rank 1.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from academy.core.exceptions import AcademyInfrastructureException
from academy.domain.models.base import DomainValidationError
from academy.domain.models.leaderboard import (
    LeaderboardEntry,
    Timeframe,
    UserRank,
    compute_percentile,
)
from academy.modules.progression.xp_award import xp_curve_from_config
from academy.modules.progression.xp_model import level_from_xp
from academy.modules.shared.base_service import BaseService
from academy.modules.shared.exceptions import AcademyDomainException, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from academy.core.config.manager import ConfigManager
    from academy.core.event.bus import EventBus
    from academy.modules.shared.store import ProgressStore

Clock = Callable[[], datetime]

MAX_LEADERBOARD_LIMIT = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaderboardService(BaseService):
    """
    Ranking reads and cache rebuild.

    Dependencies:
        - ProgressStore: leaderboard cache and windowed XP totals

    Public Methods:
        - get_user_rank() -> Rank, percentile and gap for one learner
        - get_leaderboard() -> Top entries for a timeframe
        - get_leaderboard_context() -> Entries around a rank
        - get_leaderboard_stats() -> Headline numbers for the leaderboard
        - refresh_leaderboard_cache() -> Rebuild the all-time cache
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
        self._curve = xp_curve_from_config(config_manager)
        self._windows = {
            Timeframe.WEEK: self.get_int_config(
                "leaderboard.windows.week_days", Timeframe.WEEK.window_days
            ),
            Timeframe.MONTH: self.get_int_config(
                "leaderboard.windows.month_days", Timeframe.MONTH.window_days
            ),
        }

    # ========================================================================
    # PUBLIC API - Rank
    # ========================================================================

    async def get_user_rank(self, user_id: str, timeframe: str = "all") -> Dict[str, Any]:
        """
        Rank of `user_id` for `timeframe` ("all", "week" or "month").

        Returns:
            {
                "success": bool,
                "rank": int,              # 0 when unranked
                "total_users": int,
                "percentile": int,        # round((1 - rank / total) * 100)
                "xp_to_next_rank": int,
                "total_xp": int,          # window XP for week/month
                "users_above": int,
                "users_below": int,
                "timeframe": str,
                "error": Optional[str],
            }

        Example:
            >>> info = await leaderboard_service.get_user_rank("u-1", "week")
            >>> info["rank"], info["percentile"]
            (3, 70)
        """
        self.log_operation("get_user_rank", user_id=user_id, timeframe=timeframe)

        try:
            window = self._parse_timeframe(timeframe)
            if window is Timeframe.ALL:
                rank = await self._all_time_rank(user_id)
            else:
                rank = await self._windowed_rank(user_id, window)

        except (AcademyDomainException, AcademyInfrastructureException) as exc:
            self.log_error("get_user_rank", exc, user_id=user_id, timeframe=timeframe)
            return {
                "success": False,
                **UserRank.unranked(Timeframe.ALL).to_dict(),
                "timeframe": str(timeframe),
                "error": exc.message,
            }

        return {"success": True, **rank.to_dict(), "error": None}

    async def _all_time_rank(self, user_id: str) -> UserRank:
        total_users = await self._store.count_leaderboard_entries()
        entry = await self._store.get_leaderboard_entry(user_id)
        if entry is None or entry.rank <= 0:
            return UserRank.unranked(Timeframe.ALL, total_users)

        xp_to_next = 0
        if entry.rank > 1:
            above = await self._store.get_leaderboard_entry_at_rank(entry.rank - 1)
            if above is not None:
                xp_to_next = max(above.total_xp - entry.total_xp, 0)

        return self._build_rank(entry.rank, total_users, entry.total_xp, xp_to_next, Timeframe.ALL)

    async def _windowed_rank(self, user_id: str, timeframe: Timeframe) -> UserRank:
        totals = await self._store.period_xp_totals(self._cutoff(timeframe))
        active = {uid: xp for uid, xp in totals.items() if xp > 0}
        mine = active.get(user_id, 0)
        if mine <= 0:
            return UserRank.unranked(timeframe, len(active))

        higher = [xp for xp in active.values() if xp > mine]
        rank = 1 + len(higher)
        xp_to_next = min(higher) - mine if higher else 0

        return self._build_rank(rank, len(active), mine, xp_to_next, timeframe)

    @staticmethod
    def _build_rank(
        rank: int, total_users: int, total_xp: int, xp_to_next: int, timeframe: Timeframe
    ) -> UserRank:
        return UserRank(
            rank=rank,
            total_users=total_users,
            percentile=compute_percentile(rank, total_users),
            xp_to_next_rank=xp_to_next,
            total_xp=total_xp,
            users_above=rank - 1,
            users_below=max(total_users - rank, 0),
            timeframe=timeframe,
        )

    # ========================================================================
    # PUBLIC API - Listings
    # ========================================================================

    async def get_leaderboard(
        self, timeframe: str = "all", limit: int = MAX_LEADERBOARD_LIMIT
    ) -> List[Dict[str, Any]]:
        """
        Top entries for `timeframe`, best first.

        Windowed entries carry window XP only; lifetime counters are zero.
        Returns [] on invalid input or store failure.
        """
        self.log_operation("get_leaderboard", timeframe=timeframe, limit=limit)

        try:
            self.validate_range(limit, "limit", 1, MAX_LEADERBOARD_LIMIT)
            window = self._parse_timeframe(timeframe)
            entries = await self._entries(window, limit=limit, offset=0)
        except (AcademyDomainException, AcademyInfrastructureException) as exc:
            self.log_error("get_leaderboard", exc, timeframe=timeframe, limit=limit)
            return []

        return [entry.to_dict() for entry in entries]

    async def get_leaderboard_context(
        self, rank: int, timeframe: str = "all", spread: int = 5
    ) -> List[Dict[str, Any]]:
        """
        Entries from `rank - spread` to `rank + spread`, clamped at rank 1.
        """
        self.log_operation("get_leaderboard_context", rank=rank, timeframe=timeframe, spread=spread)

        try:
            self.validate_non_negative_int(rank, "rank")
            self.validate_non_negative_int(spread, "spread")
            window = self._parse_timeframe(timeframe)

            start = max(rank - spread, 1)
            end = rank + spread
            entries = await self._entries(window, limit=end - start + 1, offset=start - 1)
        except (AcademyDomainException, AcademyInfrastructureException) as exc:
            self.log_error("get_leaderboard_context", exc, rank=rank, timeframe=timeframe)
            return []

        return [entry.to_dict() for entry in entries]

    async def get_leaderboard_stats(self) -> Dict[str, Any]:
        """
        Headline figures: ranked users, XP across them and this week's leader.
        """
        self.log_operation("get_leaderboard_stats")

        try:
            total_users = await self._store.count_leaderboard_entries()
            entries = await self._store.list_leaderboard_entries(limit=total_users or 1)
            weekly = await self._ranked_window(Timeframe.WEEK)
        except AcademyInfrastructureException as exc:
            self.log_error("get_leaderboard_stats", exc)
            return {
                "success": False,
                "total_users": 0,
                "total_xp_earned": 0,
                "top_performer_this_week": None,
                "error": exc.message,
            }

        top = weekly[0] if weekly else None
        return {
            "success": True,
            "total_users": total_users,
            "total_xp_earned": sum(entry.total_xp for entry in entries),
            "top_performer_this_week": (
                {"user_id": top[0], "xp_earned": top[1]} if top is not None else None
            ),
            "error": None,
        }

    # ========================================================================
    # PUBLIC API - Cache rebuild
    # ========================================================================

    async def refresh_leaderboard_cache(self) -> Dict[str, Any]:
        """
        Rebuild the all-time cache from user aggregates.

        Users with XP are ranked 1..N by total XP desc, then signup asc.
        """
        self.log_operation("refresh_leaderboard_cache")

        try:
            users = await self._store.list_users_with_xp()
            calculated_at = self._clock()
            entries = [
                LeaderboardEntry(
                    rank=position,
                    user_id=user.user_id,
                    total_xp=user.total_xp,
                    level=level_from_xp(user.total_xp, *self._curve),
                    lessons_completed=user.lessons_completed,
                    courses_completed=user.courses_completed,
                    streak_days=user.current_streak,
                    calculated_at=calculated_at,
                )
                for position, user in enumerate(users, start=1)
            ]
            await self._store.replace_leaderboard(entries)

        except AcademyInfrastructureException as exc:
            self.log_error("refresh_leaderboard_cache", exc)
            return {"success": False, "entries": 0, "error": exc.message}

        self.log.info(
            "Leaderboard cache refreshed",
            extra={"entries": len(entries), "calculated_at": calculated_at.isoformat()},
        )
        return {"success": True, "entries": len(entries), "error": None}

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    @staticmethod
    def _parse_timeframe(timeframe: str) -> Timeframe:
        try:
            return Timeframe.from_value(timeframe)
        except DomainValidationError as exc:
            raise ValidationError.from_domain(exc) from exc

    def _cutoff(self, timeframe: Timeframe) -> datetime:
        return self._clock() - timedelta(days=self._windows[timeframe])

    async def _entries(
        self, timeframe: Timeframe, *, limit: int, offset: int
    ) -> List[LeaderboardEntry]:
        if timeframe is Timeframe.ALL:
            return await self._store.list_leaderboard_entries(limit=limit, offset=offset)

        calculated_at = self._clock()
        ranked = await self._ranked_window(timeframe)
        entries: List[LeaderboardEntry] = []
        rank = 0
        previous_xp: Optional[int] = None
        for position, (user_id, xp) in enumerate(ranked, start=1):
            if xp != previous_xp:
                rank = position
                previous_xp = xp
            entries.append(
                LeaderboardEntry(
                    rank=rank,
                    user_id=user_id,
                    total_xp=xp,
                    calculated_at=calculated_at,
                )
            )
        return entries[offset : offset + limit]

    async def _ranked_window(self, timeframe: Timeframe) -> List[Tuple[str, int]]:
        totals = await self._store.period_xp_totals(self._cutoff(timeframe))
        ranked = [(user_id, xp) for user_id, xp in totals.items() if xp > 0]
        ranked.sort(key=lambda item: (-item[1], item[0]))
        return ranked
