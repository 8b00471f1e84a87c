"""
Academy: XP, levels, badges and leaderboards for a learning platform.

The engine records lesson completions idempotently, awards XP by lesson
type and quiz score, derives levels from cumulative XP, cascades course
completion bonuses, auto-awards badges from declarative criteria and reads
rank and percentile from aggregate XP.

Usage
-----
    from academy import AcademyEngine

    engine = AcademyEngine(store)
    await engine.complete_lesson("u-1", "l-1", "c-1")
"""

from __future__ import annotations

from academy.engine import AcademyEngine

__version__ = "1.0.0"

__all__ = ["AcademyEngine", "__version__"]
