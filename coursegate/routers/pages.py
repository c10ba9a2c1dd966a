"""Pages and the protection each one declares.

Rendering belongs to the front end; these routes return the page context the
front end needs once the gate has released the page.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.protection import ProtectionKind
from ..deps.gate import page_gate
from ..services.dispatcher import GateDecision
from ..schemas.gate import GateResponse, decision_to_response

router = APIRouter(tags=["pages"])


@router.get("/", response_model=GateResponse)
async def home_page(decision: GateDecision = Depends(page_gate(ProtectionKind.NONE))):
    return decision_to_response(decision)


@router.get("/login", response_model=GateResponse)
async def login_page(decision: GateDecision = Depends(page_gate(ProtectionKind.NONE))):
    return decision_to_response(decision)


@router.get("/no-access", response_model=GateResponse)
async def no_access_page(decision: GateDecision = Depends(page_gate(ProtectionKind.NONE))):
    return decision_to_response(decision)


@router.get("/members", response_model=GateResponse)
async def members_page(decision: GateDecision = Depends(page_gate(ProtectionKind.BASIC))):
    return decision_to_response(decision)


@router.get("/account", response_model=GateResponse)
async def account_page(decision: GateDecision = Depends(page_gate(ProtectionKind.ACCOUNT))):
    return decision_to_response(decision)


@router.get("/profile", response_model=GateResponse)
async def profile_page(decision: GateDecision = Depends(page_gate(ProtectionKind.PROFILE))):
    return decision_to_response(decision)


@router.get("/courses/{course_slug}", response_model=GateResponse)
async def course_page(
    course_slug: str,
    decision: GateDecision = Depends(page_gate(ProtectionKind.COURSE, resource_param="course_slug")),
):
    return decision_to_response(decision)
