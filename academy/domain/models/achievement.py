"""
Achievement (badge) domain models.

Badge definitions store their criteria as loose JSON
(`{"type": "lessons_completed", "value": 10}`). `parse_criterion` turns that
into one of the typed criterion classes below once, at load time. Kinds the
engine does not recognise become `UnknownCriterion`, which is never
satisfied; the evaluator logs and skips it.

Criterion kinds
---------------
| kind              | satisfied when                          |
|-------------------|-----------------------------------------|
| lessons_completed | lessons >= threshold                    |
| courses_completed | courses >= threshold                    |
| perfect_scores    | perfect quiz count >= threshold         |
| streak_days       | current OR longest streak >= threshold  |
| total_xp          | total XP >= threshold                   |
| level_reached     | derived level >= threshold              |
| first_lesson      | lessons >= 1                            |
| first_course      | courses >= 1                            |
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, Union

from academy.domain.models.base import (
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
)

DEFAULT_BADGE_XP_REWARD = 50


class Rarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Rarity":
        if value is None:
            return cls.COMMON
        if isinstance(value, Rarity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise DomainValidationError(f"Unknown rarity {value!r}", field="rarity") from None


@dataclass(frozen=True)
class UserStats:
    """Snapshot of the aggregates badges are evaluated against."""

    user_id: str
    lessons_completed: int = 0
    courses_completed: int = 0
    perfect_scores: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_xp: int = 0
    level: int = 1


# ============================================================================
# CRITERIA
# ============================================================================


@dataclass(frozen=True)
class _ThresholdCriterion:
    kind: ClassVar[str] = ""
    threshold: int

    def __post_init__(self) -> None:
        validate_non_negative(self.threshold, "threshold")

    def is_satisfied(self, stats: UserStats) -> bool:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "value": self.threshold}


@dataclass(frozen=True)
class LessonsCompleted(_ThresholdCriterion):
    kind: ClassVar[str] = "lessons_completed"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.lessons_completed >= self.threshold


@dataclass(frozen=True)
class CoursesCompleted(_ThresholdCriterion):
    kind: ClassVar[str] = "courses_completed"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.courses_completed >= self.threshold


@dataclass(frozen=True)
class PerfectScores(_ThresholdCriterion):
    kind: ClassVar[str] = "perfect_scores"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.perfect_scores >= self.threshold


@dataclass(frozen=True)
class StreakDays(_ThresholdCriterion):
    kind: ClassVar[str] = "streak_days"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.current_streak >= self.threshold or stats.longest_streak >= self.threshold


@dataclass(frozen=True)
class TotalXp(_ThresholdCriterion):
    kind: ClassVar[str] = "total_xp"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.total_xp >= self.threshold


@dataclass(frozen=True)
class LevelReached(_ThresholdCriterion):
    kind: ClassVar[str] = "level_reached"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.level >= self.threshold


@dataclass(frozen=True)
class FirstLesson:
    kind: ClassVar[str] = "first_lesson"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.lessons_completed >= 1

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "value": 1}


@dataclass(frozen=True)
class FirstCourse:
    kind: ClassVar[str] = "first_course"

    def is_satisfied(self, stats: UserStats) -> bool:
        return stats.courses_completed >= 1

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "value": 1}


@dataclass(frozen=True)
class UnknownCriterion:
    """Unrecognised or malformed criteria payload. Never satisfied."""

    kind: ClassVar[str] = "unknown"
    raw_type: Optional[str] = None
    reason: str = "unknown criterion type"
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def is_satisfied(self, stats: UserStats) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)


BadgeCriterion = Union[
    LessonsCompleted,
    CoursesCompleted,
    PerfectScores,
    StreakDays,
    TotalXp,
    LevelReached,
    FirstLesson,
    FirstCourse,
    UnknownCriterion,
]

_THRESHOLD_KINDS: Dict[str, Type[_ThresholdCriterion]] = {
    cls.kind: cls
    for cls in (
        LessonsCompleted,
        CoursesCompleted,
        PerfectScores,
        StreakDays,
        TotalXp,
        LevelReached,
    )
}


def parse_criterion(raw: Any) -> BadgeCriterion:
    """
    Convert a stored criteria payload into a typed criterion.

    Never raises: anything unusable becomes `UnknownCriterion` with a reason.
    """
    if not isinstance(raw, Mapping):
        return UnknownCriterion(reason="criteria is not an object")

    raw_type = raw.get("type")
    if not raw_type:
        return UnknownCriterion(reason="criteria has no type", raw=dict(raw))

    kind = str(raw_type)
    if kind == FirstLesson.kind:
        return FirstLesson()
    if kind == FirstCourse.kind:
        return FirstCourse()

    criterion_cls = _THRESHOLD_KINDS.get(kind)
    if criterion_cls is None:
        return UnknownCriterion(raw_type=kind, raw=dict(raw))

    value = raw.get("value")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return UnknownCriterion(
            raw_type=kind,
            reason=f"invalid threshold {value!r}",
            raw=dict(raw),
        )
    return criterion_cls(threshold=int(value))


# ============================================================================
# DEFINITIONS AND AWARDS
# ============================================================================


@dataclass(frozen=True)
class AchievementDefinition:
    achievement_id: str
    name: str
    criterion: BadgeCriterion
    description: str = ""
    icon: str = ""
    xp_reward: int = DEFAULT_BADGE_XP_REWARD
    rarity: Rarity = Rarity.COMMON
    is_active: bool = True
    times_earned: int = 0

    def __post_init__(self) -> None:
        validate_not_empty(self.achievement_id, "achievement_id")
        validate_not_empty(self.name, "name")
        validate_non_negative(self.xp_reward, "xp_reward")
        object.__setattr__(self, "rarity", Rarity.from_value(self.rarity))

    @classmethod
    def from_raw(
        cls,
        *,
        achievement_id: str,
        name: str,
        criteria: Any,
        xp_reward: Optional[int] = None,
        default_xp_reward: int = DEFAULT_BADGE_XP_REWARD,
        **kwargs: Any,
    ) -> "AchievementDefinition":
        """Build from a stored row; an unset or zero reward falls back to `default_xp_reward`."""
        return cls(
            achievement_id=achievement_id,
            name=name,
            criterion=parse_criterion(criteria),
            xp_reward=xp_reward or default_xp_reward,
            **kwargs,
        )


@dataclass(frozen=True)
class UserAchievement:
    user_id: str
    achievement_id: str
    earned_at: datetime
