from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_db
from ..deps.gate import require_identity
from ..schemas.progress import ProgressMark, ProgressOut, ProgressStatus
from ..services.identity import Identity
from ..services.progress import ProgressRecorder

router = APIRouter(prefix="/api/v1/progress", tags=["progress"])


@router.post("/complete", response_model=ProgressOut, summary="Mark a lesson complete")
async def mark_complete(
    payload: ProgressMark,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    row = await ProgressRecorder(db).mark_complete(
        identity,
        payload.lesson_slug,
        course_slug=payload.course_slug,
        module_slug=payload.module_slug,
    )
    return ProgressOut.model_validate(row)


@router.get("/{lesson_slug}", response_model=ProgressStatus, summary="Completion state of a lesson")
async def check_progress(
    lesson_slug: str,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    completed = await ProgressRecorder(db).check_progress(identity, lesson_slug)
    return ProgressStatus(lesson_slug=lesson_slug, completed=completed)
