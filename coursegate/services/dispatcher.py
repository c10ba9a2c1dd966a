"""Protection dispatcher.

A page declares one ``ProtectionKind``. ``ProtectionDispatcher.dispatch``
walks the gate states for that declaration and ends in exactly one terminal
decision: ``ALLOWED`` (the page proceeds) or ``REDIRECTED`` (login or
no-access). The order is fixed: session first, then entitlement or profile
bootstrap, and only then access.

Nothing is inferred from page structure: a page is gated only by what it
declares.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..core.config import AppSettings
from ..core.errors import BootstrapError
from ..core.protection import TERMINAL_STATES, GateState, ProtectionKind, parse_protection_kind
from ..models.profile import Profile
from .account import AccountLoader, AccountSummary
from .bootstrap import ProfileBootstrap
from .entitlements import EntitlementGate
from .identity import Identity, Session
from .session_oracle import SessionOracle

logger = logging.getLogger("coursegate.gate")

REASON_LOGIN = "login"
REASON_NO_ACCESS = "no_access"


@dataclass(frozen=True)
class PageDeclaration:
    kind: ProtectionKind
    resource_key: Optional[str] = None
    path: str = ""

    @classmethod
    def declare(
        cls,
        kind: "str | ProtectionKind | None",
        resource_key: Optional[str] = None,
        path: str = "",
    ) -> "PageDeclaration":
        key = (resource_key or "").strip() or None
        return cls(kind=parse_protection_kind(kind), resource_key=key, path=path)


@dataclass
class GateContext:
    """Everything one gating decision needs, built once per request."""

    settings: AppSettings
    sessions: SessionOracle
    entitlements: EntitlementGate
    profiles: ProfileBootstrap
    account: AccountLoader
    debug_requested: bool = False

    @property
    def debug_bypass(self) -> bool:
        return self.debug_requested and self.settings.GATE_DEBUG_BYPASS_ENABLED

    @property
    def show_debug_context(self) -> bool:
        return self.debug_requested and self.settings.APP_DEBUG


@dataclass
class GateDecision:
    kind: ProtectionKind
    state: GateState = GateState.UNCHECKED
    location: Optional[str] = None
    reason: Optional[str] = None
    session: Optional[Session] = None
    profile: Optional[Profile] = None
    account: Optional[AccountSummary] = None
    notice: Optional[str] = None
    trail: List[GateState] = field(default_factory=lambda: [GateState.UNCHECKED])

    @property
    def allowed(self) -> bool:
        return self.state is GateState.ALLOWED

    @property
    def redirected(self) -> bool:
        return self.state is GateState.REDIRECTED

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.identity if self.session else None

    def advance(self, state: GateState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"gate decision already final ({self.state.value})")
        self.state = state
        self.trail.append(state)

    def allow(self, reason: str) -> "GateDecision":
        self.reason = reason
        self.advance(GateState.ALLOWED)
        return self

    def redirect(self, location: str, reason: str) -> "GateDecision":
        self.location = location
        self.reason = reason
        self.advance(GateState.REDIRECTED)
        return self


class ProtectionDispatcher:
    async def dispatch(self, ctx: GateContext, page: PageDeclaration) -> GateDecision:
        decision = GateDecision(kind=page.kind)
        result = await self._run(ctx, page, decision)
        self._log(page, result)
        return result

    async def _run(self, ctx: GateContext, page: PageDeclaration, decision: GateDecision) -> GateDecision:
        settings = ctx.settings
        if ctx.debug_bypass:
            logger.warning("gate.debug_bypass", extra={"extra_data": {"path": page.path}})
            return decision.allow("debug_bypass")

        if page.kind is ProtectionKind.NONE:
            return decision.allow("public")

        decision.advance(GateState.AUTH_PENDING)
        session = await ctx.sessions.current_session()
        if session is None:
            return decision.redirect(settings.REDIRECT_LOGIN, REASON_LOGIN)

        decision.session = session
        decision.advance(GateState.AUTHORIZED)

        if page.kind is ProtectionKind.BASIC:
            return decision.allow("authenticated")

        if page.kind is ProtectionKind.ACCOUNT:
            decision.account = await ctx.account.load(
                session, debug=ctx.show_debug_context, path=page.path
            )
            return decision.allow("authenticated")

        if page.kind is ProtectionKind.PROFILE:
            try:
                decision.profile = await ctx.profiles.ensure_profile(session.identity)
            except BootstrapError as exc:
                logger.error("gate.profile_bootstrap_failed", exc_info=exc)
                decision.notice = exc.user_message
            return decision.allow("authenticated")

        if page.kind is ProtectionKind.COURSE:
            return await self._check_entitlement(ctx, page, decision, session)

        raise AssertionError(f"unhandled protection kind {page.kind!r}")

    async def _check_entitlement(
        self,
        ctx: GateContext,
        page: PageDeclaration,
        decision: GateDecision,
        session: Session,
    ) -> GateDecision:
        settings = ctx.settings
        decision.advance(GateState.CHECKING_ENTITLEMENT)
        if page.resource_key is None:
            logger.warning(
                "gate.course_without_resource_key",
                extra={"extra_data": {"path": page.path, "deny": settings.GATE_DENY_COURSE_WITHOUT_KEY}},
            )
            if settings.GATE_DENY_COURSE_WITHOUT_KEY:
                return decision.redirect(settings.REDIRECT_NO_ACCESS, REASON_NO_ACCESS)
            return decision.allow("no_resource_key")

        # The identity always comes from the session fetched above, never from the request.
        if await ctx.entitlements.has_entitlement(session.identity, page.resource_key):
            return decision.allow("entitled")
        return decision.redirect(settings.REDIRECT_NO_ACCESS, REASON_NO_ACCESS)

    def _log(self, page: PageDeclaration, decision: GateDecision) -> None:
        extra = {
            "kind": page.kind.value,
            "path": page.path,
            "state": decision.state.value,
            "reason": decision.reason,
        }
        if page.resource_key:
            extra["resource_key"] = page.resource_key
        if decision.location:
            extra["location"] = decision.location
        if decision.identity:
            extra["user_id"] = decision.identity.id
        logger.info("gate.decision", extra={"extra_data": extra})
