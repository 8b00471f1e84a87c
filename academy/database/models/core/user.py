"""
User: one learner's gamification aggregate.
Schema only.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import BigInteger, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from academy.core.database.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """
    XP, cached level, lifetime counters and streak state.

    `current_level` is a cache of the level derived from `total_xp`.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_total_xp_created", "total_xp", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    total_xp: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    current_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    lessons_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    courses_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    badges_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    current_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
