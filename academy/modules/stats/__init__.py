"""
Stats: level summary and XP history.
"""

from __future__ import annotations

from .service import StatsService

__all__ = ["StatsService"]
