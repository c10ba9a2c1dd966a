"""Schemas for asking the service for a gating decision."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .profile import ProfileOut


class GateRequest(BaseModel):
    kind: Optional[str] = Field(default=None, description="Declared protection kind")
    resource_key: Optional[str] = Field(default=None, alias="resourceKey")
    path: str = ""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"kind": "course", "resourceKey": "course-101", "path": "/courses/course-101"}},
    )


class CourseLinkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    course_slug: str
    url: str
    status: str = "active"


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email: Optional[str] = None
    full_name: str
    entitlements: List[CourseLinkOut] = Field(default_factory=list)
    message: Optional[str] = None
    error: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None


class GateResponse(BaseModel):
    allowed: bool
    kind: str
    state: str
    reason: Optional[str] = None
    location: Optional[str] = None
    notice: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    profile: Optional[ProfileOut] = None
    account: Optional[AccountOut] = None
    trail: List[str] = Field(default_factory=list)


def decision_to_response(decision) -> GateResponse:
    identity = decision.identity
    return GateResponse(
        allowed=decision.allowed,
        kind=decision.kind.value,
        state=decision.state.value,
        reason=decision.reason,
        location=decision.location,
        notice=decision.notice,
        user_id=identity.id if identity else None,
        email=identity.email if identity else None,
        profile=ProfileOut.model_validate(decision.profile) if decision.profile is not None else None,
        account=AccountOut.model_validate(decision.account) if decision.account is not None else None,
        trail=[state.value for state in decision.trail],
    )
