"""SQLAlchemy model for the one-per-identity profile row."""

from __future__ import annotations

from sqlalchemy import Column, Text

from ..db.session import Base


class Profile(Base):
    """Descriptive fields owned by a single identity; ``id`` is the identity id."""

    __tablename__ = "profiles"

    id = Column(Text, primary_key=True)
    email = Column(Text, nullable=True)
    full_name = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    website = Column(Text, nullable=True)
    company = Column(Text, nullable=True)
    role = Column(Text, nullable=True)
    updated_at = Column(Text, nullable=True)


__all__ = ["Profile"]
