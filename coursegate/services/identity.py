"""Identity provider boundary.

The service never authenticates anyone itself. It talks to a GoTrue-compatible
auth server over HTTP and keeps only the resulting tokens in the signed session
cookie. ``IdentityProvider`` is the seam the gating code depends on; tests swap
in an in-memory implementation.
"""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

import httpx
from starlette import status

from ..core.config import AppSettings
from ..core.errors import IdentityProviderError
from ..core.security import TokenExpired, decode_access_token, read_unverified_expiry

logger = logging.getLogger(__name__)

# Refresh a little before the provider would reject the token.
EXPIRY_MARGIN_SECONDS = 30


@dataclass(frozen=True)
class Identity:
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class StoredTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["StoredTokens"]:
        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        expires_at = data.get("expires_at")
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token") or None,
            expires_at=int(expires_at) if isinstance(expires_at, (int, float)) else None,
        )


@dataclass(frozen=True)
class Session:
    identity: Identity
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    @property
    def user(self) -> Identity:
        return self.identity

    @property
    def tokens(self) -> StoredTokens:
        return StoredTokens(self.access_token, self.refresh_token, self.expires_at)

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at <= now + EXPIRY_MARGIN_SECONDS


@dataclass(frozen=True)
class SignUpResult:
    identity: Identity
    # Absent when the provider requires e-mail confirmation first.
    session: Optional[Session] = None


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


AuthStateCallback = Callable[[AuthEvent, Optional[Session]], Union[None, Awaitable[None]]]


class AuthEventBus:
    """Ordered auth-state subscriptions.

    ``emit`` awaits every subscriber in subscription order before returning, so
    a provider call that changes auth state completes only after all listeners
    have seen the change. A failing listener is logged and skipped.
    """

    def __init__(self) -> None:
        self._subscribers: List[AuthStateCallback] = []

    def subscribe(self, callback: AuthStateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    async def emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event, session)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("auth.listener_failed", extra={"extra_data": {"event": event.value}})


def log_auth_state_change(event: AuthEvent, session: Optional[Session]) -> None:
    extra: Dict[str, Any] = {"event": event.value}
    if session is not None:
        extra["user_id"] = session.identity.id
    logger.info("auth.state_changed", extra={"extra_data": extra})


class IdentityProvider(Protocol):
    async def get_session(self, tokens: Optional[StoredTokens]) -> Optional[Session]: ...

    async def sign_up(self, email: str, password: str) -> SignUpResult: ...

    async def sign_in_with_password(self, email: str, password: str) -> Session: ...

    async def sign_out(self, session: Session) -> None: ...

    async def refresh_session(self, refresh_token: str) -> Session: ...

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None: ...

    async def exchange_code_for_session(self, code: str, code_verifier: Optional[str] = None) -> Session: ...

    async def update_user(self, session: Session, *, password: str) -> Identity: ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]: ...


def _identity_from_user(user: Dict[str, Any]) -> Identity:
    user_id = user.get("id")
    if not user_id:
        raise IdentityProviderError("Identity provider returned a user without an id", status_code=status.HTTP_502_BAD_GATEWAY)
    return Identity(id=str(user_id), email=user.get("email"))


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"Identity provider error ({response.status_code})"
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Identity provider error ({response.status_code})"


class GoTrueIdentityProvider:
    """``IdentityProvider`` backed by a GoTrue-compatible REST API."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        events: Optional[AuthEventBus] = None,
    ) -> None:
        self._settings = settings
        self._base_url = settings.auth_base_url
        self._api_key = settings.AUTH_PUBLISHABLE_KEY
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.AUTH_TIMEOUT_SECONDS))
        self.events = events or AuthEventBus()

    async def aclose(self) -> None:
        await self._client.aclose()

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        return self.events.subscribe(callback)

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"apikey": self._api_key, "Content-Type": "application/json"}
        bearer = access_token or self._api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(
                method, url, params=params, json=json, headers=self._headers(access_token)
            )
        except httpx.HTTPError as exc:
            logger.warning("auth.transport_error", extra={"extra_data": {"path": path, "error": str(exc)}})
            raise IdentityProviderError(
                "Authentication service unavailable", status_code=status.HTTP_503_SERVICE_UNAVAILABLE
            ) from exc
        if response.status_code >= 400:
            code = response.status_code if response.status_code < 500 else status.HTTP_502_BAD_GATEWAY
            raise IdentityProviderError(_error_message(response), status_code=code)
        if response.status_code == status.HTTP_204_NO_CONTENT or not response.content:
            return {}
        return response.json()

    def _session_from_payload(self, payload: Dict[str, Any]) -> Session:
        access_token = payload.get("access_token")
        if not access_token:
            raise IdentityProviderError("Identity provider returned no session", status_code=status.HTTP_502_BAD_GATEWAY)
        expires_at = payload.get("expires_at")
        if expires_at is None and payload.get("expires_in") is not None:
            expires_at = int(time.time()) + int(payload["expires_in"])
        return Session(
            identity=_identity_from_user(payload.get("user") or {}),
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            expires_at=int(expires_at) if expires_at is not None else None,
        )

    async def _verify(self, tokens: StoredTokens) -> Session:
        secret = self._settings.AUTH_JWT_SECRET
        if secret:
            claims = decode_access_token(
                tokens.access_token, secret=secret, audience=self._settings.AUTH_JWT_AUDIENCE or None
            )
            identity = Identity(id=claims.sub, email=claims.email)
            expires_at = int(claims.exp.timestamp())
        else:
            user = await self._request("GET", "/user", access_token=tokens.access_token)
            identity = _identity_from_user(user)
            expires_at = tokens.expires_at
            if expires_at is None:
                expiry = read_unverified_expiry(tokens.access_token)
                expires_at = int(expiry.timestamp()) if expiry else None
        return Session(identity, tokens.access_token, tokens.refresh_token, expires_at)

    async def get_session(self, tokens: Optional[StoredTokens]) -> Optional[Session]:
        if tokens is None:
            return None
        expires_at = tokens.expires_at
        if expires_at is None:
            expiry = read_unverified_expiry(tokens.access_token)
            expires_at = int(expiry.timestamp()) if expiry else None
        if expires_at is not None and expires_at <= time.time() + EXPIRY_MARGIN_SECONDS:
            if not tokens.refresh_token:
                return None
            return await self.refresh_session(tokens.refresh_token)
        try:
            return await self._verify(tokens)
        except TokenExpired:
            if not tokens.refresh_token:
                return None
            return await self.refresh_session(tokens.refresh_token)
        except ValueError:
            logger.info("auth.invalid_token")
            return None
        except IdentityProviderError as exc:
            if exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
                return None
            raise

    async def sign_up(self, email: str, password: str) -> SignUpResult:
        payload = await self._request("POST", "/signup", json={"email": email, "password": password})
        if payload.get("access_token"):
            session = self._session_from_payload(payload)
            await self.events.emit(AuthEvent.SIGNED_IN, session)
            return SignUpResult(identity=session.identity, session=session)
        user = payload.get("user") or payload
        return SignUpResult(identity=_identity_from_user(user))

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        payload = await self._request(
            "POST", "/token", params={"grant_type": "password"}, json={"email": email, "password": password}
        )
        session = self._session_from_payload(payload)
        await self.events.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self, session: Session) -> None:
        try:
            await self._request("POST", "/logout", access_token=session.access_token)
        except IdentityProviderError as exc:
            # An already-revoked token still counts as signed out.
            if exc.status_code not in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN, status.HTTP_404_NOT_FOUND):
                raise
        await self.events.emit(AuthEvent.SIGNED_OUT, None)

    async def refresh_session(self, refresh_token: str) -> Session:
        payload = await self._request(
            "POST", "/token", params={"grant_type": "refresh_token"}, json={"refresh_token": refresh_token}
        )
        session = self._session_from_payload(payload)
        await self.events.emit(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        await self._request("POST", "/recover", params={"redirect_to": redirect_to}, json={"email": email})

    async def exchange_code_for_session(self, code: str, code_verifier: Optional[str] = None) -> Session:
        body: Dict[str, Any] = {"auth_code": code}
        if code_verifier:
            body["code_verifier"] = code_verifier
        payload = await self._request("POST", "/token", params={"grant_type": "pkce"}, json=body)
        session = self._session_from_payload(payload)
        await self.events.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def update_user(self, session: Session, *, password: str) -> Identity:
        user = await self._request("PUT", "/user", access_token=session.access_token, json={"password": password})
        identity = _identity_from_user(user)
        await self.events.emit(AuthEvent.USER_UPDATED, session)
        return identity
