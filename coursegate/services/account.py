"""Data for the account page, loaded only after the visitor is authorized."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import AppSettings
from ..core.errors import StoreError
from ..crud import profiles as profile_crud
from .entitlements import EntitlementGate
from .identity import Session

logger = logging.getLogger(__name__)

NAME_PLACEHOLDER = "(name not set yet)"
NO_ENTITLEMENTS_MESSAGE = "No course access found. Contact support if this is incorrect."


@dataclass
class CourseLink:
    course_slug: str
    url: str
    status: str = "active"


@dataclass
class AccountSummary:
    user_id: str
    email: Optional[str]
    full_name: str
    entitlements: List[CourseLink] = field(default_factory=list)
    message: Optional[str] = None
    error: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None


class AccountLoader:
    def __init__(self, db: AsyncSession, entitlements: EntitlementGate, settings: AppSettings) -> None:
        self._db = db
        self._entitlements = entitlements
        self._settings = settings

    async def _discard(self) -> None:
        try:
            await self._db.rollback()
        except SQLAlchemyError:
            logger.warning("account.rollback_failed", exc_info=True)

    async def _full_name(self, session: Session) -> str:
        try:
            profile = await profile_crud.get_profile(self._db, owner_id=session.identity.id)
        except SQLAlchemyError:
            logger.warning("account.profile_unavailable", exc_info=True)
            await self._discard()
            return NAME_PLACEHOLDER
        if profile is not None and profile.full_name:
            return profile.full_name
        return NAME_PLACEHOLDER

    async def load(self, session: Session, *, debug: bool = False, path: str = "") -> AccountSummary:
        identity = session.identity
        summary = AccountSummary(
            user_id=identity.id,
            email=identity.email,
            full_name=await self._full_name(session),
        )

        try:
            slugs = await self._entitlements.list_entitlements(identity)
        except StoreError as exc:
            logger.error("account.entitlements_failed", exc_info=exc)
            summary.error = exc.user_message
        else:
            base = self._settings.COURSES_BASE_PATH
            summary.entitlements = [CourseLink(course_slug=slug, url=f"{base}{slug}") for slug in slugs]
            if not slugs:
                summary.message = NO_ENTITLEMENTS_MESSAGE

        if debug:
            summary.debug = {
                "user_id": identity.id,
                "email": identity.email,
                "session": "Active",
                "page": path,
            }
        return summary
