from __future__ import annotations

from datetime import datetime, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ValidationError

ALGORITHM = "HS256"


class AccessTokenClaims(BaseModel):
    sub: str
    exp: datetime
    iat: datetime | None = None
    aud: str | list[str] | None = None
    email: str | None = None
    role: str | None = None


class TokenExpired(ValueError):
    pass


def decode_access_token(token: str, *, secret: str, audience: str | None = None) -> AccessTokenClaims:
    """Verify an identity provider access token locally.

    Raises ``TokenExpired`` for a well-formed but expired token and
    ``ValueError`` for anything else that fails verification.
    """

    options = {"verify_aud": bool(audience)}
    try:
        decoded = jwt.decode(token, secret, algorithms=[ALGORITHM], audience=audience, options=options)
    except ExpiredSignatureError as exc:
        raise TokenExpired("Token expired") from exc
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        return AccessTokenClaims.model_validate(decoded)
    except ValidationError as exc:
        raise ValueError("Invalid token payload") from exc


def read_unverified_expiry(token: str) -> datetime | None:
    """Expiry claim of a token without verifying its signature."""

    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)
