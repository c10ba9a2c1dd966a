from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ProgressError
from ..crud import progress as progress_crud
from ..models.progress import LessonProgress
from .identity import Identity

logger = logging.getLogger(__name__)


class ProgressRecorder:
    """Completion facts per (identity, lesson).

    ``check_progress`` is informational only and must never be used to grant
    access to anything.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _discard(self) -> None:
        try:
            await self._db.rollback()
        except SQLAlchemyError:
            logger.warning("progress.rollback_failed", exc_info=True)

    async def mark_complete(
        self,
        identity: Identity,
        lesson_slug: str,
        *,
        course_slug: Optional[str] = None,
        module_slug: Optional[str] = None,
    ) -> LessonProgress:
        try:
            row = await progress_crud.upsert_completion(
                self._db,
                owner_id=identity.id,
                lesson_slug=lesson_slug,
                course_slug=course_slug,
                module_slug=module_slug,
            )
        except SQLAlchemyError as exc:
            await self._discard()
            logger.error(
                "progress.upsert_failed",
                exc_info=exc,
                extra={"extra_data": {"user_id": identity.id, "lesson_slug": lesson_slug}},
            )
            raise ProgressError("progress upsert failed") from exc
        logger.info(
            "progress.marked_complete",
            extra={"extra_data": {"user_id": identity.id, "lesson_slug": lesson_slug}},
        )
        return row

    async def check_progress(self, identity: Identity, lesson_slug: str) -> bool:
        try:
            row = await progress_crud.get_progress(self._db, owner_id=identity.id, lesson_slug=lesson_slug)
        except SQLAlchemyError as exc:
            await self._discard()
            raise ProgressError("progress read failed") from exc
        return bool(row and row.completed)
