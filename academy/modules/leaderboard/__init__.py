"""
Leaderboard: rank reads and cache rebuild.
"""

from __future__ import annotations

from .service import MAX_LEADERBOARD_LIMIT, LeaderboardService

__all__ = ["LeaderboardService", "MAX_LEADERBOARD_LIMIT"]
