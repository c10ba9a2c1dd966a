"""Application factory and top-level wiring for CourseGate.

``create_app`` builds every long-lived collaborator exactly once (settings,
database engine, identity provider, dispatcher) and hangs them on
``app.state``. Request handlers never reach for module globals: the gate
dependencies assemble an explicit ``GateContext`` from ``app.state`` for each
request.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.middleware.sessions import SessionMiddleware

from .core.config import AppSettings, get_settings
from .core.errors import register_exception_handlers
from .db.session import build_engine, build_sessionmaker, init_models
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware
from .services.dispatcher import ProtectionDispatcher
from .services.identity import GoTrueIdentityProvider, IdentityProvider, log_auth_state_change


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    identity_provider: Optional[IdentityProvider] = None,
    engine: Optional[AsyncEngine] = None,
) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or build_engine(settings.database_url)
    provider = identity_provider or GoTrueIdentityProvider(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await init_models(engine)
        try:
            yield
        finally:
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()
            await engine.dispose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    provider.on_auth_state_change(log_auth_state_change)

    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    app.state.identity_provider = provider
    app.state.dispatcher = ProtectionDispatcher()

    # Middleware runs outermost-last: request ids wrap everything, the session
    # cookie is decoded before any gate dependency reads it.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.APP_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE,
        same_site="lax",
        https_only=settings.SESSION_HTTPS_ONLY,
    )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    from .routers import api_gate, api_profile, api_progress, auth, pages

    app.include_router(pages.router)
    app.include_router(auth.router)
    app.include_router(api_gate.router)
    app.include_router(api_profile.router)
    app.include_router(api_progress.router)

    return app


__all__ = ["create_app"]
