from __future__ import annotations

import logging
from typing import MutableMapping, Optional, Protocol

from .identity import IdentityProvider, Session, StoredTokens

logger = logging.getLogger(__name__)

SESSION_TOKENS_KEY = "auth"


class TokenStore(Protocol):
    def load(self) -> Optional[StoredTokens]: ...

    def save(self, tokens: StoredTokens) -> None: ...

    def clear(self) -> None: ...


class CookieTokenStore:
    """Keeps the provider tokens inside the signed Starlette session cookie."""

    def __init__(self, data: MutableMapping) -> None:
        self._data = data

    def load(self) -> Optional[StoredTokens]:
        return StoredTokens.from_dict(self._data.get(SESSION_TOKENS_KEY))

    def save(self, tokens: StoredTokens) -> None:
        self._data[SESSION_TOKENS_KEY] = tokens.to_dict()

    def clear(self) -> None:
        self._data.pop(SESSION_TOKENS_KEY, None)


class SessionOracle:
    """Fresh accessor over the identity provider's current-session query.

    Every ``current_session`` call goes back to the provider. Failures of any
    kind read as "no session"; the caller decides what absence means. The only
    local effect is writing refreshed tokens back to the token store.
    """

    def __init__(self, provider: IdentityProvider, tokens: TokenStore) -> None:
        self._provider = provider
        self._tokens = tokens

    async def current_session(self) -> Optional[Session]:
        stored = self._tokens.load()
        if stored is None:
            return None
        try:
            session = await self._provider.get_session(stored)
        except Exception as exc:
            logger.warning("session.lookup_failed", extra={"extra_data": {"error": str(exc)}})
            return None
        if session is None:
            return None
        if session.tokens != stored:
            self._tokens.save(session.tokens)
        return session
