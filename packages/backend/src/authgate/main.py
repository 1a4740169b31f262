"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The Settings object is built once (get_settings()) and every
collaborator that needs configuration gets it from here: the database
engine, the token issuer, the feature gate and the OAuth registry all
live on app.state. Lifespan manages startup/shutdown.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.middleware.sessions import SessionMiddleware

from authgate import __version__
from authgate.api import api_router
from authgate.auth.tokens import TokenIssuer
from authgate.config import Settings, get_settings
from authgate.db.engine import build_engine, build_session_factory
from authgate.errors import AuthError
from authgate.logging_config import configure_logging
from authgate.middleware.request_logging import RequestLoggingMiddleware
from authgate.middleware.security import SecurityHeadersMiddleware
from authgate.oauth.providers import OAuthProviders
from authgate.services.feature_gate import FeatureGateClient

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown.
    """
    settings: Settings = app.state.settings
    logger.info(
        "authgate.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        oauth_providers=sorted(app.state.oauth_providers.configured),
    )

    yield

    logger.info("authgate.shutdown")
    await app.state.engine.dispose()


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map domain errors to {"message": ...}.

    Server-side errors (missing seed data) are logged and hidden behind
    a generic message.
    """
    if exc.status_code >= 500:
        logger.error("auth.server_error", error=str(exc), path=request.url.path)
        message = exc.public_message
    else:
        message = str(exc)
    return JSONResponse(status_code=exc.status_code, content={"message": message})


def create_app(
    settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None
) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(debug=settings.debug, environment=settings.environment)

    app = FastAPI(
        title="authgate",
        description="Email/password and OAuth sign-in resolving to one account, issuing role-bearing JWTs",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine or build_engine(settings)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.token_issuer = TokenIssuer(settings)
    app.state.feature_gate = FeatureGateClient.from_settings(settings)
    app.state.oauth_providers = OAuthProviders(settings)

    app.add_exception_handler(AuthError, auth_error_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestLogging → Security → Session → CORS → handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=24 * 60 * 60,
        https_only=settings.environment == "production",
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router)

    return app


def get_app() -> FastAPI:
    """uvicorn factory entry point: `uvicorn authgate.main:get_app --factory`."""
    return create_app()
