"""
Progression: XP curve, lesson XP table, XP awards and completion recording.
"""

from __future__ import annotations

from .lesson_rules import (
    COURSE_COMPLETION_BONUS,
    QUIZ_PASSING_SCORE,
    LessonXpRules,
    is_quiz_passed,
    xp_for_lesson,
)
from .service import ProgressService
from .xp_award import XpAwarder, XpAwardResult
from .xp_model import level_from_xp, level_progress, xp_for_level, xp_to_next_level

__all__ = [
    "ProgressService",
    "XpAwarder",
    "XpAwardResult",
    "LessonXpRules",
    "COURSE_COMPLETION_BONUS",
    "QUIZ_PASSING_SCORE",
    "xp_for_lesson",
    "is_quiz_passed",
    "xp_for_level",
    "level_from_xp",
    "xp_to_next_level",
    "level_progress",
]
