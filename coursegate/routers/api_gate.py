from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..deps.gate import get_gate_context, run_gate
from ..schemas.gate import GateRequest, GateResponse, decision_to_response
from ..services.dispatcher import GateContext, PageDeclaration

router = APIRouter(prefix="/api/v1/gate", tags=["gate"])


@router.post("", response_model=GateResponse, summary="Decide whether a page may be shown")
async def decide(payload: GateRequest, request: Request, ctx: GateContext = Depends(get_gate_context)):
    # Redirects are reported, not performed: the calling page navigates itself.
    page = PageDeclaration.declare(payload.kind, payload.resource_key, payload.path)
    decision = await run_gate(request, ctx, page)
    return decision_to_response(decision)
