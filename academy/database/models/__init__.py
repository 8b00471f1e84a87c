"""
Unified model aggregator for the Academy schema.

Importing this package registers every table on `Base.metadata`.
"""

# --- Core ---
from .core.user import User

# --- Learning content ---
from .learning.course import Course, Lesson

# --- Progression ---
from .progression.achievement import Achievement, UserAchievement
from .progression.completion import LessonCompletion
from .progression.leaderboard import LeaderboardCache
from .progression.user_progress import UserProgress

__all__ = [
    "User",
    "Course",
    "Lesson",
    "LessonCompletion",
    "UserProgress",
    "Achievement",
    "UserAchievement",
    "LeaderboardCache",
]
