"""
Achievement definitions and the per-user award records.
Schema only.

`criteria` holds the declarative JSON payload, e.g.
`{"type": "lessons_completed", "value": 10}`; it is stored as JSONB on
PostgreSQL and JSON elsewhere.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from academy.core.database.base import Base, IdMixin, TimestampMixin, utcnow
from academy.domain.models.achievement import Rarity


class Achievement(Base, TimestampMixin):
    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    icon: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    criteria: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), default=dict, nullable=False
    )
    # NULL means the default reward
    xp_reward: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rarity: Mapped[str] = mapped_column(
        String(20), default=Rarity.COMMON.value, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    times_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class UserAchievement(Base, IdMixin):
    """One row per (user, achievement); its existence blocks re-awarding."""

    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id"),)

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    achievement_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
