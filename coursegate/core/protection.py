"""Protection kinds a page can declare and the gate states a dispatch walks."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class ProtectionKind(str, Enum):
    NONE = "none"
    BASIC = "basic"
    ACCOUNT = "account"
    PROFILE = "profile"
    COURSE = "course"


class GateState(str, Enum):
    UNCHECKED = "unchecked"
    AUTH_PENDING = "auth_pending"
    AUTHORIZED = "authorized"
    CHECKING_ENTITLEMENT = "checking_entitlement"
    ALLOWED = "allowed"
    REDIRECTED = "redirected"


TERMINAL_STATES = frozenset({GateState.ALLOWED, GateState.REDIRECTED})


def parse_protection_kind(value: str | ProtectionKind | None) -> ProtectionKind:
    """Return the declared kind, degrading unknown values to ``basic``.

    An unrecognised declaration is never read as ``none``: the page still
    requires a session.
    """

    if isinstance(value, ProtectionKind):
        return value
    normalized = (value or "").strip().lower()
    try:
        return ProtectionKind(normalized)
    except ValueError:
        logger.warning(
            "gate.unknown_protection_kind",
            extra={"extra_data": {"declared": value, "applied": ProtectionKind.BASIC.value}},
        )
        return ProtectionKind.BASIC


__all__ = [
    "GateState",
    "ProtectionKind",
    "TERMINAL_STATES",
    "parse_protection_kind",
]
