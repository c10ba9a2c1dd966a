"""Protection dispatcher state machine against a real SQLite store."""

import asyncio
import logging

import pytest
from sqlalchemy.exc import OperationalError

from coursegate.core.protection import GateState, ProtectionKind, parse_protection_kind
from coursegate.crud import profiles as profile_crud
from coursegate.models import Profile
from coursegate.services.account import AccountLoader, NAME_PLACEHOLDER
from coursegate.services.bootstrap import ProfileBootstrap
from coursegate.services.dispatcher import GateContext, GateDecision, PageDeclaration, ProtectionDispatcher
from coursegate.services.entitlements import EntitlementGate
from coursegate.services.session_oracle import CookieTokenStore, SessionOracle


def make_context(settings, provider, db, session=None, debug=False):
    cookie = {}
    store = CookieTokenStore(cookie)
    if session is not None:
        store.save(session.tokens)
    entitlements = EntitlementGate(db)
    return GateContext(
        settings=settings,
        sessions=SessionOracle(provider, store),
        entitlements=entitlements,
        profiles=ProfileBootstrap(db),
        account=AccountLoader(db, entitlements, settings),
        debug_requested=debug,
    )


class ForbiddenCollaborator:
    """Fails the test if the dispatcher reaches it."""

    def __getattr__(self, name):
        raise AssertionError(f"unexpected call to {name}")


def test_unknown_kind_degrades_to_basic(caplog):
    with caplog.at_level(logging.WARNING):
        assert parse_protection_kind("members-only") is ProtectionKind.BASIC
    assert "gate.unknown_protection_kind" in caplog.text
    assert parse_protection_kind("") is ProtectionKind.BASIC
    assert parse_protection_kind(None) is ProtectionKind.BASIC
    assert parse_protection_kind(" Course ") is ProtectionKind.COURSE
    assert parse_protection_kind("none") is ProtectionKind.NONE


def test_public_page_skips_session_lookup(settings, provider, open_store):
    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(settings, provider, db)
                return await ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("none"))

    decision = asyncio.run(scenario())
    assert decision.allowed
    assert decision.trail == [GateState.UNCHECKED, GateState.ALLOWED]
    assert provider.lookups == 0


@pytest.mark.parametrize("kind", ["basic", "account", "profile", "course", "bogus"])
def test_missing_session_redirects_to_login_before_anything_else(settings, provider, kind):
    ctx = GateContext(
        settings=settings,
        sessions=SessionOracle(provider, CookieTokenStore({})),
        entitlements=ForbiddenCollaborator(),
        profiles=ForbiddenCollaborator(),
        account=ForbiddenCollaborator(),
    )
    page = PageDeclaration.declare(kind, "course-101")

    decision = asyncio.run(ProtectionDispatcher().dispatch(ctx, page))

    assert decision.redirected
    assert decision.location == "/login"
    assert decision.trail == [GateState.UNCHECKED, GateState.AUTH_PENDING, GateState.REDIRECTED]


def test_provider_outage_reads_as_no_session(settings, provider, open_store):
    identity = provider.add_user("U1", "u1@example.com")
    session = provider.issue(identity)
    provider.fail_lookups = True

    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(settings, provider, db, session)
                return await ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("basic"))

    decision = asyncio.run(scenario())
    assert decision.redirected
    assert decision.location == "/login"


def test_course_entitlement_scenario(settings, provider, open_store, grant):
    identity = provider.add_user("U1", "u1@example.com")
    session = provider.issue(identity)
    page = PageDeclaration.declare("course", "course-101", "/courses/course-101")

    async def dispatch():
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(settings, provider, db, session)
                return await ProtectionDispatcher().dispatch(ctx, page)

    denied = asyncio.run(dispatch())
    assert denied.redirected
    assert denied.location == "/no-access"
    assert GateState.CHECKING_ENTITLEMENT in denied.trail

    grant(("U1", "course-101"))

    allowed = asyncio.run(dispatch())
    assert allowed.allowed
    assert allowed.reason == "entitled"
    assert allowed.trail == [
        GateState.UNCHECKED,
        GateState.AUTH_PENDING,
        GateState.AUTHORIZED,
        GateState.CHECKING_ENTITLEMENT,
        GateState.ALLOWED,
    ]


def test_entitlement_of_another_identity_does_not_count(settings, provider, open_store, grant):
    identity = provider.add_user("U1", "u1@example.com")
    session = provider.issue(identity)
    grant(("U2", "course-101"))

    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(settings, provider, db, session)
                return await ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("course", "course-101"))

    assert asyncio.run(scenario()).redirected


def test_course_without_resource_key_follows_configured_policy(settings, provider, open_store):
    identity = provider.add_user("U1", "u1@example.com")
    session = provider.issue(identity)

    async def dispatch(cfg):
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(cfg, provider, db, session)
                return await ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("course", "  "))

    passed = asyncio.run(dispatch(settings))
    assert passed.allowed
    assert passed.reason == "no_resource_key"

    strict = settings.model_copy(update={"GATE_DENY_COURSE_WITHOUT_KEY": True})
    denied = asyncio.run(dispatch(strict))
    assert denied.redirected
    assert denied.location == "/no-access"


def test_profile_page_bootstraps_profile(settings, provider, open_store):
    identity = provider.add_user("U2", "u2@example.com")
    session = provider.issue(identity)

    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(settings, provider, db, session)
                decision = await ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("profile"))
            async with sessions() as db:
                stored = await db.get(Profile, "U2")
        return decision, stored

    decision, stored = asyncio.run(scenario())
    assert decision.allowed
    assert decision.profile is not None
    assert decision.profile.id == "U2"
    assert decision.notice is None
    assert stored is not None
    assert stored.email == "u2@example.com"


def test_account_page_populates_summary_after_authorization(settings, provider, open_store, grant):
    identity = provider.add_user("U1", "u1@example.com")
    session = provider.issue(identity)
    grant(("U1", "course-101"), ("U1", "course-202"))

    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(settings, provider, db, session)
                return await ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("account"))

    decision = asyncio.run(scenario())
    assert decision.allowed
    summary = decision.account
    assert summary.email == "u1@example.com"
    assert summary.full_name == NAME_PLACEHOLDER
    assert [link.url for link in summary.entitlements] == ["/courses/course-101", "/courses/course-202"]
    assert summary.debug is None


def test_debug_bypass_requires_local_opt_in(settings, provider):
    bypassing = settings.model_copy(update={"GATE_DEBUG_BYPASS_ENABLED": True})
    ctx = GateContext(
        settings=bypassing,
        sessions=ForbiddenCollaborator(),
        entitlements=ForbiddenCollaborator(),
        profiles=ForbiddenCollaborator(),
        account=ForbiddenCollaborator(),
        debug_requested=True,
    )
    decision = asyncio.run(ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("course", "course-101")))
    assert decision.allowed
    assert decision.reason == "debug_bypass"

    ignored = GateContext(
        settings=settings,
        sessions=SessionOracle(provider, CookieTokenStore({})),
        entitlements=ForbiddenCollaborator(),
        profiles=ForbiddenCollaborator(),
        account=ForbiddenCollaborator(),
        debug_requested=True,
    )
    decision = asyncio.run(ProtectionDispatcher().dispatch(ignored, PageDeclaration.declare("course", "course-101")))
    assert decision.redirected


def test_decision_is_final_once_terminal():
    decision = GateDecision(kind=ProtectionKind.BASIC).allow("public")
    with pytest.raises(RuntimeError):
        decision.redirect("/login", "login")


def test_profile_page_survives_store_failure(settings, provider, open_store, monkeypatch):
    identity = provider.add_user("U2", "u2@example.com")
    session = provider.issue(identity)

    async def unreadable(db, *, owner_id):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(profile_crud, "get_profile", unreadable)

    async def scenario():
        async with open_store() as sessions:
            async with sessions() as db:
                ctx = make_context(settings, provider, db, session)
                return await ProtectionDispatcher().dispatch(ctx, PageDeclaration.declare("profile"))

    decision = asyncio.run(scenario())
    assert decision.allowed
    assert decision.profile is None
    assert decision.notice == "Error loading profile"
    assert decision.trail == [GateState.UNCHECKED, GateState.AUTH_PENDING, GateState.AUTHORIZED, GateState.ALLOWED]


class UnavailableStore:
    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("server closed the connection"))

    async def rollback(self):
        raise OperationalError("ROLLBACK", {}, Exception("server closed the connection"))


def test_account_summary_degrades_when_store_and_rollback_fail(settings, provider):
    identity = provider.add_user("U1", "u1@example.com")
    session = provider.issue(identity)
    db = UnavailableStore()
    loader = AccountLoader(db, EntitlementGate(db), settings)

    summary = asyncio.run(loader.load(session))

    assert summary.full_name == NAME_PLACEHOLDER
    assert summary.entitlements == []
    assert summary.error == "Could not load entitlements."
