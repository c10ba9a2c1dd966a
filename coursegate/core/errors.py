from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Raised when the identity provider rejects a call or cannot be reached."""

    def __init__(self, message: str, *, status_code: int = status.HTTP_400_BAD_REQUEST) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StoreError(Exception):
    """Base class for data store failures surfaced to the caller."""

    code = "store_error"
    user_message = "The request could not be completed"


class BootstrapError(StoreError):
    """Profile bootstrap failed for a reason other than a concurrent insert."""

    code = "bootstrap_failed"
    user_message = "Error loading profile"


class ProfileUpdateError(StoreError):
    code = "profile_update_failed"
    user_message = "Could not update profile"


class ProgressError(StoreError):
    code = "progress_failed"
    user_message = "Could not save progress"


class GateRedirect(Exception):
    """Terminal redirect decided by the protection dispatcher."""

    def __init__(self, location: str, *, reason: str) -> None:
        super().__init__(f"{reason} -> {location}")
        self.location = location
        self.reason = reason


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def _wants_html(request: Request) -> bool:
    if request.url.path.startswith("/api"):
        return False
    accept = (request.headers.get("accept") or "").lower()
    return not accept or "text/html" in accept or "*/*" in accept


async def gate_redirect_handler(request: Request, exc: GateRedirect):
    if _wants_html(request):
        return RedirectResponse(url=exc.location, status_code=status.HTTP_302_FOUND)
    status_code = status.HTTP_401_UNAUTHORIZED if exc.reason == "login" else status.HTTP_403_FORBIDDEN
    return ErrorEnvelope(
        status_code=status_code,
        code=f"gate_{exc.reason}",
        message="Login required" if exc.reason == "login" else "Access denied",
        details={"location": exc.location},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": exc.errors()},
    )


async def identity_provider_handler(request: Request, exc: IdentityProviderError):
    return ErrorEnvelope(status_code=exc.status_code, code="auth_error", message=exc.message)


async def store_error_handler(request: Request, exc: StoreError):
    logger.error("store.failure", exc_info=exc, extra={"extra_data": {"code": exc.code}})
    return ErrorEnvelope(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        code=exc.code,
        message=exc.user_message,
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(GateRedirect, gate_redirect_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IdentityProviderError, identity_provider_handler)
    app.add_exception_handler(StoreError, store_error_handler)
