"""
Domain models for Academy.

Immutable, self-validating value objects. Separate from the ORM models in
`academy.database.models`; stores convert between the two.
"""

from academy.domain.models.achievement import (
    AchievementDefinition,
    BadgeCriterion,
    CoursesCompleted,
    FirstCourse,
    FirstLesson,
    LessonsCompleted,
    LevelReached,
    PerfectScores,
    Rarity,
    StreakDays,
    TotalXp,
    UnknownCriterion,
    UserAchievement,
    UserStats,
    parse_criterion,
)
from academy.domain.models.base import DomainValidationError
from academy.domain.models.leaderboard import LeaderboardEntry, Timeframe, UserRank
from academy.domain.models.progress import (
    CompletionRecord,
    CourseProgress,
    Lesson,
    LessonType,
    UserAggregate,
    compute_progress_percentage,
)

__all__ = [
    "DomainValidationError",
    # Progress
    "UserAggregate",
    "Lesson",
    "LessonType",
    "CompletionRecord",
    "CourseProgress",
    "compute_progress_percentage",
    # Achievements
    "AchievementDefinition",
    "BadgeCriterion",
    "LessonsCompleted",
    "CoursesCompleted",
    "PerfectScores",
    "StreakDays",
    "TotalXp",
    "LevelReached",
    "FirstLesson",
    "FirstCourse",
    "UnknownCriterion",
    "Rarity",
    "UserAchievement",
    "UserStats",
    "parse_criterion",
    # Leaderboard
    "LeaderboardEntry",
    "Timeframe",
    "UserRank",
]
