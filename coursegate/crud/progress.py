"""Owner-scoped access to the ``lesson_progress`` table."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ProgressError
from ..models.progress import LessonProgress

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def get_progress(db: AsyncSession, *, owner_id: str, lesson_slug: str) -> LessonProgress | None:
    stmt = select(LessonProgress).where(
        LessonProgress.user_id == owner_id,
        LessonProgress.lesson_slug == lesson_slug,
    ).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalars().first()


async def upsert_completion(
    db: AsyncSession,
    *,
    owner_id: str,
    lesson_slug: str,
    course_slug: str | None = None,
    module_slug: str | None = None,
) -> LessonProgress:
    """Insert or update the (owner, lesson) row with ``completed`` set."""

    dialect = db.bind.dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is None:
        raise ProgressError(f"progress upsert is not supported on {dialect!r}")

    now = _utcnow()
    stmt = insert(LessonProgress).values(
        user_id=owner_id,
        course_slug=course_slug,
        module_slug=module_slug,
        lesson_slug=lesson_slug,
        completed=True,
        completed_at=now,
        last_viewed_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[LessonProgress.user_id, LessonProgress.lesson_slug],
        set_={
            "course_slug": func.coalesce(stmt.excluded.course_slug, LessonProgress.course_slug),
            "module_slug": func.coalesce(stmt.excluded.module_slug, LessonProgress.module_slug),
            "completed": True,
            "completed_at": stmt.excluded.completed_at,
            "last_viewed_at": stmt.excluded.last_viewed_at,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)
    await db.commit()
    row = await get_progress(db, owner_id=owner_id, lesson_slug=lesson_slug)
    if row is None:
        raise ProgressError("progress row missing after upsert")
    return row
