from .achievement import Achievement, UserAchievement
from .completion import LessonCompletion
from .leaderboard import LeaderboardCache
from .user_progress import UserProgress

__all__ = [
    "Achievement",
    "UserAchievement",
    "LessonCompletion",
    "LeaderboardCache",
    "UserProgress",
]
