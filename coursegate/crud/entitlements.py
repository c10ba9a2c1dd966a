"""Read-only, owner-scoped access to the ``entitlements`` table."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.entitlement import Entitlement


async def has_entitlement(db: AsyncSession, *, owner_id: str, course_slug: str) -> bool:
    stmt = (
        select(Entitlement.id)
        .where(Entitlement.user_id == owner_id, Entitlement.course_slug == course_slug)
        .limit(1)
    )
    return (await db.execute(stmt)).first() is not None


async def list_entitlements(db: AsyncSession, *, owner_id: str) -> list[Entitlement]:
    stmt = select(Entitlement).where(Entitlement.user_id == owner_id).order_by(Entitlement.course_slug)
    return list((await db.execute(stmt)).scalars().all())
