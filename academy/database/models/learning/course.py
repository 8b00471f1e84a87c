"""
Course and Lesson reference data.
Schema only; authoring happens outside the engine.
"""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from academy.core.database.base import Base, TimestampMixin
from academy.domain.models.progress import LessonType


class Course(Base, TimestampMixin):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    total_lessons: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Lesson(Base, TimestampMixin):
    """
    One lesson of a course. `lesson_type` drives the XP table.
    """

    __tablename__ = "lessons"
    __table_args__ = (
        Index("ix_lessons_course_order", "course_id", "order_index"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    course_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    lesson_type: Mapped[str] = mapped_column(
        String(20), default=LessonType.TEXT.value, nullable=False
    )
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
