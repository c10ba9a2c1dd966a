"""Idempotent creation of the per-identity profile row.

The first authenticated visit creates the profile lazily. Two tabs can make
that first visit at the same time, so the insert may lose a race to another
request; the store's primary key decides the winner and the loser re-reads the
winning row instead of failing.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import BootstrapError, ProfileUpdateError
from ..crud import profiles as profile_crud
from ..models.profile import Profile
from .identity import Identity

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_SQLSTATE = "23505"
_UNIQUE_MESSAGES = ("unique constraint failed", "duplicate key value", "primary key must be unique")


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` reports a duplicate key rather than another constraint."""

    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == UNIQUE_VIOLATION_SQLSTATE
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _UNIQUE_MESSAGES)


class ProfileBootstrap:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _discard(self) -> None:
        try:
            await self._db.rollback()
        except SQLAlchemyError:
            logger.warning("profile.rollback_failed", exc_info=True)

    async def ensure_profile(self, identity: Identity) -> Profile:
        """Return the caller's profile, creating it exactly once if needed."""

        try:
            profile = await profile_crud.get_profile(self._db, owner_id=identity.id)
        except SQLAlchemyError as exc:
            await self._discard()
            raise BootstrapError("profile read failed") from exc
        if profile is not None:
            return profile

        logger.info("profile.create", extra={"extra_data": {"user_id": identity.id}})
        try:
            return await profile_crud.insert_profile(self._db, owner_id=identity.id, email=identity.email)
        except IntegrityError as exc:
            await self._discard()
            if not is_unique_violation(exc):
                raise BootstrapError("profile insert rejected") from exc
            logger.info("profile.create_raced", extra={"extra_data": {"user_id": identity.id}})
            try:
                profile = await profile_crud.get_profile(self._db, owner_id=identity.id)
            except SQLAlchemyError as read_exc:
                await self._discard()
                raise BootstrapError("profile re-read failed") from read_exc
            if profile is None:
                raise BootstrapError("profile missing after concurrent insert") from exc
            return profile
        except SQLAlchemyError as exc:
            await self._discard()
            raise BootstrapError("profile insert failed") from exc

    async def update_profile(self, identity: Identity, payload: dict) -> Profile:
        await self.ensure_profile(identity)
        try:
            profile = await profile_crud.update_profile(self._db, owner_id=identity.id, payload=payload)
        except SQLAlchemyError as exc:
            await self._discard()
            raise ProfileUpdateError("profile update failed") from exc
        if profile is None:
            raise ProfileUpdateError("profile vanished during update")
        return profile
