"""
XP Model

Purpose
-------
Pure functions mapping total XP to level and progress. This is the single
source of truth for a learner's level; any stored level is a cache that is
recomputed from XP.

Design Notes
------------
- Pure, deterministic, no I/O, no config access (curve parameters are
  passed in; the defaults are the production curve).
- Total for non-negative integers: nothing here raises for valid input.
- Level 1 is the floor; there is no level 0 and no level cap.

Usage
-----
    from academy.modules.progression.xp_model import level_from_xp

    level = level_from_xp(user.total_xp)
"""

from __future__ import annotations

import math

DEFAULT_BASE_XP = 100
DEFAULT_EXPONENT = 1.5


def xp_for_level(
    level: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> int:
    """
    Cumulative XP threshold for `level`: floor(base_xp * level ** exponent).

    Example:
        >>> xp_for_level(1)
        100
        >>> xp_for_level(2)
        282
        >>> xp_for_level(10)
        3162
    """
    level = max(int(level), 1)
    return int(math.floor(base_xp * level**exponent))


def level_from_xp(
    total_xp: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> int:
    """
    Largest level whose threshold does not exceed `total_xp`.

    Found by linear ascent from level 1. Any total below the level 2
    threshold (including 0) is level 1.

    Example:
        >>> level_from_xp(0)
        1
        >>> level_from_xp(282)
        2
        >>> level_from_xp(518)
        2
        >>> level_from_xp(519)
        3
    """
    level = 1
    while xp_for_level(level + 1, base_xp, exponent) <= total_xp:
        level += 1
    return level


def xp_to_next_level(
    total_xp: int,
    level: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> int:
    """
    XP still needed to reach `level + 1`.

    Never negative when `level` was derived with `level_from_xp`.

    Example:
        >>> xp_to_next_level(100, 1)
        182
    """
    return xp_for_level(level + 1, base_xp, exponent) - total_xp


def level_progress(
    total_xp: int,
    level: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> float:
    """
    Percentage through the current level's XP band, clamped to [0, 100].

    Example:
        >>> level_progress(282, 2)
        0.0
        >>> round(level_progress(401, 2), 1)
        50.2
    """
    band_start = xp_for_level(level, base_xp, exponent)
    band_end = xp_for_level(level + 1, base_xp, exponent)
    band = band_end - band_start
    if band <= 0:
        return 100.0

    percentage = (total_xp - band_start) / band * 100
    return float(min(100.0, max(0.0, percentage)))
