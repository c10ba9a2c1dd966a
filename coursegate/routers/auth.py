"""Sign-up, sign-in, sign-out and password recovery forms.

All credential handling happens at the identity provider; these handlers only
forward the form fields and keep the resulting tokens in the session cookie.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Form, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from ..middlewares import bind_principal
from ..services.session_oracle import CookieTokenStore, SessionOracle

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

MISSING_FIELDS = "Please fill in all fields"


def _provider(request: Request):
    return request.app.state.identity_provider


def _safe_next(target: str, default: str) -> str:
    # Only same-site relative paths; anything else falls back to the default.
    target = (target or "").strip()
    if target.startswith("/") and not target.startswith("//") and "\\" not in target:
        return target
    return default


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.post("/signup")
async def signup(request: Request, email: str = Form(""), password: str = Form("")):
    email = email.strip()
    if not email or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_FIELDS)
    result = await _provider(request).sign_up(email, password)
    if result.session is None:
        return JSONResponse({"message": "Check your email to confirm your account!"})
    CookieTokenStore(request.session).save(result.session.tokens)
    return _redirect(request.app.state.settings.REDIRECT_AFTER_SIGNUP)


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form(""),
):
    email = email.strip()
    if not email or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_FIELDS)
    session = await _provider(request).sign_in_with_password(email, password)
    CookieTokenStore(request.session).save(session.tokens)
    bind_principal(request, session.identity.id)
    return _redirect(_safe_next(next, request.app.state.settings.REDIRECT_AFTER_LOGIN))


@router.post("/logout")
async def logout(request: Request):
    tokens = CookieTokenStore(request.session)
    session = await SessionOracle(_provider(request), tokens).current_session()
    if session is not None:
        await _provider(request).sign_out(session)
    tokens.clear()
    request.session.clear()
    return _redirect(request.app.state.settings.REDIRECT_AFTER_LOGOUT)


@router.post("/reset")
async def request_password_reset(request: Request, email: str = Form("")):
    email = email.strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter your email")
    settings = request.app.state.settings
    redirect_to = str(request.base_url).rstrip("/") + settings.PASSWORD_RESET_REDIRECT
    await _provider(request).reset_password_for_email(email, redirect_to)
    return JSONResponse({"message": "Check your email for the password reset link"})


@router.post("/update-password")
async def update_password(
    request: Request,
    new_password: str = Form("", alias="newPassword"),
    confirm_password: str = Form("", alias="confirmPassword"),
    code: str = Form(""),
):
    if not new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter a new password")
    if confirm_password and new_password != confirm_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Passwords do not match")

    provider = _provider(request)
    tokens = CookieTokenStore(request.session)
    code = code or request.query_params.get("code", "")
    if code:
        session = await provider.exchange_code_for_session(code)
        tokens.save(session.tokens)
    else:
        session = await SessionOracle(provider, tokens).current_session()
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired reset link")

    await provider.update_user(session, password=new_password)
    logger.info("auth.password_updated", extra={"extra_data": {"user_id": session.identity.id}})
    await provider.sign_out(session)
    request.session.clear()
    return _redirect(request.app.state.settings.REDIRECT_LOGIN)
