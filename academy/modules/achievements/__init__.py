"""
Achievements: badge evaluation and awarding.
"""

from __future__ import annotations

from .service import AchievementService

__all__ = ["AchievementService"]
