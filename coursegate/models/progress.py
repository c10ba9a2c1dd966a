"""SQLAlchemy model for per-lesson completion state."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Integer, Text, UniqueConstraint

from ..db.session import Base


class LessonProgress(Base):
    """One row per (user_id, lesson_slug); writes are upserts on that pair."""

    __tablename__ = "lesson_progress"
    __table_args__ = (UniqueConstraint("user_id", "lesson_slug", name="uq_lesson_progress_user_lesson"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, index=True)
    course_slug = Column(Text, nullable=True)
    module_slug = Column(Text, nullable=True)
    lesson_slug = Column(Text, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(Text, nullable=True)
    last_viewed_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)


__all__ = ["LessonProgress"]
