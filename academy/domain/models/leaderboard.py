"""
Leaderboard domain models: timeframes, ranked entries and rank lookups.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from academy.domain.models.base import DomainValidationError, validate_non_negative


class Timeframe(str, Enum):
    ALL = "all"
    WEEK = "week"
    MONTH = "month"

    @property
    def window_days(self) -> Optional[int]:
        """Trailing window length; None for all-time."""
        return {Timeframe.WEEK: 7, Timeframe.MONTH: 30}.get(self)

    @classmethod
    def from_value(cls, value: "str | Timeframe") -> "Timeframe":
        if isinstance(value, Timeframe):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise DomainValidationError(
                f"Unknown timeframe {value!r}; expected all, week or month",
                field="timeframe",
            ) from None


@dataclass(frozen=True)
class LeaderboardEntry:
    """
    One ranked row.

    For windowed timeframes `total_xp` is the XP earned inside the window and
    the lifetime counters are left at zero.
    """

    rank: int
    user_id: str
    total_xp: int
    level: int = 1
    lessons_completed: int = 0
    courses_completed: int = 0
    streak_days: int = 0
    calculated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_non_negative(self.rank, "rank")
        validate_non_negative(self.total_xp, "total_xp")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UserRank:
    rank: int
    total_users: int
    percentile: int
    xp_to_next_rank: int
    total_xp: int
    users_above: int
    users_below: int
    timeframe: Timeframe

    @classmethod
    def unranked(cls, timeframe: Timeframe, total_users: int = 0) -> "UserRank":
        return cls(
            rank=0,
            total_users=total_users,
            percentile=0,
            xp_to_next_rank=0,
            total_xp=0,
            users_above=0,
            users_below=0,
            timeframe=timeframe,
        )

    @property
    def is_ranked(self) -> bool:
        return self.rank > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timeframe"] = self.timeframe.value
        return data


def compute_percentile(rank: int, total_users: int) -> int:
    """round((1 - rank / total) * 100); 0 when either side is zero."""
    if rank <= 0 or total_users <= 0:
        return 0
    return int(round((1 - rank / total_users) * 100))
