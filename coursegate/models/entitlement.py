"""SQLAlchemy model for course entitlements (granted by an admin process)."""

from __future__ import annotations

from sqlalchemy import Column, Integer, Text, UniqueConstraint

from ..db.session import Base


class Entitlement(Base):
    __tablename__ = "entitlements"
    __table_args__ = (UniqueConstraint("user_id", "course_slug", name="uq_entitlements_user_course"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, index=True)
    course_slug = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)


__all__ = ["Entitlement"]
