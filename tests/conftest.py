"""Shared fixtures: throw-away SQLite stores and an in-memory identity provider."""

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from starlette import status

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from coursegate.core.config import AppSettings
from coursegate.core.errors import IdentityProviderError
from coursegate.db.session import build_engine, build_sessionmaker, init_models
from coursegate.models import Entitlement
from coursegate.services.identity import (
    AuthEvent,
    AuthEventBus,
    Identity,
    Session,
    SignUpResult,
    StoredTokens,
)


class FakeIdentityProvider:
    """In-memory stand-in for the remote identity provider."""

    def __init__(self) -> None:
        self.events = AuthEventBus()
        self._users: Dict[str, Tuple[str, Identity]] = {}
        self._sessions: Dict[str, Identity] = {}
        self.lookups = 0
        self.fail_lookups = False
        self.passwords_updated: List[str] = []

    def add_user(self, user_id: str, email: str, password: str = "pw") -> Identity:
        identity = Identity(id=user_id, email=email)
        self._users[email] = (password, identity)
        return identity

    def issue(self, identity: Identity) -> Session:
        token = f"access-{identity.id}-{len(self._sessions)}"
        self._sessions[token] = identity
        return Session(identity=identity, access_token=token, refresh_token=f"refresh-{token}")

    def on_auth_state_change(self, callback):
        return self.events.subscribe(callback)

    async def get_session(self, tokens: Optional[StoredTokens]) -> Optional[Session]:
        self.lookups += 1
        if self.fail_lookups:
            raise IdentityProviderError("unreachable", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
        if tokens is None:
            return None
        identity = self._sessions.get(tokens.access_token)
        if identity is None:
            return None
        return Session(identity, tokens.access_token, tokens.refresh_token, tokens.expires_at)

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        identity = self.add_user(f"user-{len(self._users) + 1}", email, password)
        return SignUpResult(identity=identity)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        stored = self._users.get(email)
        if stored is None or stored[0] != password:
            raise IdentityProviderError("Invalid login credentials")
        session = self.issue(stored[1])
        await self.events.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self, session: Session) -> None:
        self._sessions.pop(session.access_token, None)

    async def refresh_session(self, refresh_token: str) -> Session:
        raise IdentityProviderError("refresh not supported")

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        return None

    async def exchange_code_for_session(self, code: str, code_verifier: Optional[str] = None) -> Session:
        raise IdentityProviderError("Invalid or expired reset link")

    async def update_user(self, session: Session, *, password: str) -> Identity:
        self.passwords_updated.append(session.identity.id)
        return session.identity


@pytest.fixture()
def provider():
    return FakeIdentityProvider()


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'coursegate-test.db'}"


@pytest.fixture()
def settings(db_url):
    return AppSettings(DB_URL=db_url, APP_SECRET="test-secret")


@pytest.fixture()
def open_store(db_url):
    """Async context manager yielding a sessionmaker over a fresh schema."""

    @asynccontextmanager
    async def _open():
        engine = build_engine(db_url)
        await init_models(engine)
        try:
            yield build_sessionmaker(engine)
        finally:
            await engine.dispose()

    return _open


@pytest.fixture()
def grant(open_store):
    """Insert entitlement rows the way the external admin process would."""

    def _grant(*pairs):
        async def _insert():
            async with open_store() as sessions:
                async with sessions() as db:
                    for user_id, course_slug in pairs:
                        db.add(Entitlement(user_id=user_id, course_slug=course_slug, created_at="2026-01-21T00:00:00Z"))
                    await db.commit()

        asyncio.run(_insert())

    return _grant
