from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import StoreError
from ..crud import entitlements as entitlement_crud
from .identity import Identity

logger = logging.getLogger(__name__)


class EntitlementLookupError(StoreError):
    code = "entitlements_unavailable"
    user_message = "Could not load entitlements."


class EntitlementGate:
    """Membership test over the caller's own entitlements. Fails closed."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _discard(self) -> None:
        try:
            await self._db.rollback()
        except SQLAlchemyError:
            logger.warning("entitlement.rollback_failed", exc_info=True)

    async def has_entitlement(self, identity: Identity, resource_key: str) -> bool:
        try:
            allowed = await entitlement_crud.has_entitlement(
                self._db, owner_id=identity.id, course_slug=resource_key
            )
        except Exception as exc:
            logger.error(
                "entitlement.check_failed",
                exc_info=exc,
                extra={"extra_data": {"user_id": identity.id, "resource_key": resource_key}},
            )
            await self._discard()
            return False
        if not allowed:
            logger.info(
                "entitlement.missing",
                extra={"extra_data": {"user_id": identity.id, "resource_key": resource_key}},
            )
        return allowed

    async def list_entitlements(self, identity: Identity) -> list[str]:
        try:
            rows = await entitlement_crud.list_entitlements(self._db, owner_id=identity.id)
        except SQLAlchemyError as exc:
            await self._discard()
            raise EntitlementLookupError(str(exc)) from exc
        return [row.course_slug for row in rows]
