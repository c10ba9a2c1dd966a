"""Owner-scoped access to the ``profiles`` table.

Every helper takes the owner id as a keyword-only argument and uses it as the
row predicate. There is no unscoped variant.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.profile import Profile

EDITABLE_FIELDS = ("full_name", "avatar_url", "bio", "location", "website", "company", "role")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


async def get_profile(db: AsyncSession, *, owner_id: str) -> Profile | None:
    stmt = select(Profile).where(Profile.id == owner_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalars().first()


async def insert_profile(db: AsyncSession, *, owner_id: str, email: str | None) -> Profile:
    """Insert the default profile row; raises ``IntegrityError`` if it already exists."""

    profile = Profile(
        id=owner_id,
        email=email,
        full_name="",
        avatar_url="",
        updated_at=_utcnow(),
    )
    db.add(profile)
    await db.commit()
    return profile


async def update_profile(db: AsyncSession, *, owner_id: str, payload: dict) -> Profile | None:
    values = {field: payload[field] for field in EDITABLE_FIELDS if field in payload}
    values["updated_at"] = _utcnow()
    await db.execute(update(Profile).where(Profile.id == owner_id).values(**values))
    await db.commit()
    return await get_profile(db, owner_id=owner_id)
