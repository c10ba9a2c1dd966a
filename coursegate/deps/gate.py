from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import GateRedirect
from ..core.protection import ProtectionKind
from ..db.session import get_db
from ..middlewares import bind_principal
from ..services.account import AccountLoader
from ..services.bootstrap import ProfileBootstrap
from ..services.dispatcher import GateContext, GateDecision, PageDeclaration
from ..services.entitlements import EntitlementGate
from ..services.identity import Identity
from ..services.session_oracle import CookieTokenStore, SessionOracle

DEBUG_QUERY_FLAG = "debug"


def build_gate_context(request: Request, db: AsyncSession) -> GateContext:
    settings = request.app.state.settings
    entitlements = EntitlementGate(db)
    return GateContext(
        settings=settings,
        sessions=SessionOracle(request.app.state.identity_provider, CookieTokenStore(request.session)),
        entitlements=entitlements,
        profiles=ProfileBootstrap(db),
        account=AccountLoader(db, entitlements, settings),
        debug_requested=DEBUG_QUERY_FLAG in request.query_params,
    )


async def get_gate_context(request: Request, db: AsyncSession = Depends(get_db)) -> GateContext:
    return build_gate_context(request, db)


async def run_gate(request: Request, ctx: GateContext, page: PageDeclaration) -> GateDecision:
    """Dispatch once per request; later callers get the same decision."""

    existing: Optional[GateDecision] = getattr(request.state, "gate_decision", None)
    if existing is not None:
        return existing
    request.state.gated = True
    decision = await request.app.state.dispatcher.dispatch(ctx, page)
    request.state.gate_decision = decision
    if decision.identity is not None:
        bind_principal(request, decision.identity.id)
    return decision


def page_gate(kind: "ProtectionKind | str", resource_param: Optional[str] = None):
    """Dependency factory declaring a route's protection kind.

    ``resource_param`` names the path or query parameter that carries the
    resource key for ``course`` pages.
    """

    async def dependency(request: Request, ctx: GateContext = Depends(get_gate_context)) -> GateDecision:
        resource_key = None
        if resource_param:
            resource_key = request.path_params.get(resource_param) or request.query_params.get(resource_param)
        page = PageDeclaration.declare(kind, resource_key, request.url.path)
        decision = await run_gate(request, ctx, page)
        if decision.redirected:
            raise GateRedirect(decision.location or ctx.settings.REDIRECT_LOGIN, reason=decision.reason or "login")
        return decision

    return dependency


async def require_identity(request: Request, ctx: GateContext = Depends(get_gate_context)) -> Identity:
    """Identity of the caller for writes; the debug bypass never applies here."""

    session = await ctx.sessions.current_session()
    if session is None:
        raise GateRedirect(ctx.settings.REDIRECT_LOGIN, reason="login")
    bind_principal(request, session.identity.id)
    return session.identity
