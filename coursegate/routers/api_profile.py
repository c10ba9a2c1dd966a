from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_db
from ..deps.gate import require_identity
from ..schemas.profile import ProfileOut, ProfileUpdate
from ..services.bootstrap import ProfileBootstrap
from ..services.identity import Identity

router = APIRouter(prefix="/api/v1/profile", tags=["profile"])


@router.get("", response_model=ProfileOut, summary="Caller's profile, created on first use")
async def read_profile(identity: Identity = Depends(require_identity), db: AsyncSession = Depends(get_db)):
    profile = await ProfileBootstrap(db).ensure_profile(identity)
    return ProfileOut.model_validate(profile)


@router.patch("", response_model=ProfileOut)
async def patch_profile(
    payload: ProfileUpdate,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
):
    # An explicit null leaves the field as it is; send "" to clear it.
    data = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    profile = await ProfileBootstrap(db).update_profile(identity, data)
    return ProfileOut.model_validate(profile)
