"""Auth API — sign-in methods, registration, login, OAuth callbacks.

Learn: Routes for every sign-in path. Each one ends the same way: a
resolved user goes through the TokenIssuer and the caller gets a JWT.
- GET  /auth/available-auths → methods enabled by the feature service
- POST /auth/register → email/password sign-up → {token}
- POST /auth/login → email/password → {token}
- GET  /auth/google, /auth/github → redirect to the provider
- GET  /auth/google/callback, /auth/github/callback → redirect to the
  frontend with ?token=... (or ?error=<provider>_auth_failed)
- GET  /auth/me → claims of the Bearer token

Domain errors (AuthError) are turned into {"message": ...} responses by
the handler registered in main.py.
"""

from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog
from authlib.integrations.base_client import OAuthError
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.auth.dependencies import (
    get_app_settings,
    get_current_claims,
    get_feature_gate,
    get_oauth_providers,
    get_token_issuer,
)
from authgate.auth.tokens import TokenClaims, TokenIssuer
from authgate.config import Settings
from authgate.db.engine import get_db
from authgate.errors import AuthError
from authgate.oauth.providers import OAuthProviders
from authgate.services.feature_gate import FeatureGateClient
from authgate.services.identity_resolver import IdentityResolver
from authgate.services.password_verifier import PasswordVerifier

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")


# ─── Schemas ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    # Optional on purpose: missing fields are a 400 from the service,
    # not a 422 from validation
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")

    model_config = {"populate_by_name": True}


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class TokenResponse(BaseModel):
    token: str


class MeResponse(BaseModel):
    userId: str
    email: str
    role: str


# ─── Available sign-in methods ──────────────────────────


@router.get("/available-auths", response_model=list[str])
async def available_auths(gate: FeatureGateClient = Depends(get_feature_gate)):
    """Sign-in methods switched on in the feature service."""
    return await gate.available_auths()


# ─── Email / password ───────────────────────────────────


def _password_verifier(db: AsyncSession, settings: Settings) -> PasswordVerifier:
    return PasswordVerifier(
        db,
        default_role=settings.default_role,
        hash_rounds=settings.bcrypt_rounds,
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Create an account (or add a password to an OAuth-only one)."""
    user = await _password_verifier(db, settings).register(
        body.email, body.password, body.display_name
    )
    return TokenResponse(token=issuer.issue(user))


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Login with email and password → JWT."""
    user = await _password_verifier(db, settings).login(body.email, body.password)
    return TokenResponse(token=issuer.issue(user))


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=MeResponse)
async def get_me(claims: TokenClaims = Depends(get_current_claims)):
    """Claims carried by the caller's token."""
    return claims.to_dict()


# ─── OAuth ──────────────────────────────────────────────


async def _start_oauth(
    name: str, request: Request, redirect: Optional[str], providers: OAuthProviders
):
    if not providers.is_configured(name):
        raise HTTPException(status_code=404, detail=f"{name} sign-in is not configured")
    # Survives the round trip to the provider in the signed session cookie
    if redirect:
        request.session["redirect"] = redirect
    else:
        request.session.pop("redirect", None)
    return await providers.authorize_redirect(request, name)


async def _finish_oauth(
    name: str,
    request: Request,
    db: AsyncSession,
    settings: Settings,
    issuer: TokenIssuer,
    providers: OAuthProviders,
) -> RedirectResponse:
    frontend = settings.frontend_url.rstrip("/")
    redirect = request.session.pop("redirect", None)

    if not providers.is_configured(name):
        raise HTTPException(status_code=404, detail=f"{name} sign-in is not configured")

    try:
        callback = await providers.fetch_callback(request, name)
        resolver = IdentityResolver(db, default_role=settings.default_role)
        user = await resolver.resolve(callback.to_assertion())
    except (OAuthError, AuthError, httpx.HTTPError, ValidationError, KeyError) as e:
        logger.error("auth.oauth_failed", provider=name, error=str(e))
        return RedirectResponse(
            f"{frontend}/auth?error={name}_auth_failed", status_code=302
        )

    query = {"token": issuer.issue(user)}
    if redirect:
        query["redirect"] = redirect
    logger.info("auth.oauth_succeeded", provider=name, email=user.email)
    return RedirectResponse(
        f"{frontend}/auth/callback?{urlencode(query)}", status_code=302
    )


@router.get("/google")
async def google_start(
    request: Request,
    redirect: Optional[str] = None,
    providers: OAuthProviders = Depends(get_oauth_providers),
):
    return await _start_oauth("google", request, redirect, providers)


@router.get("/google/callback")
async def google_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
    providers: OAuthProviders = Depends(get_oauth_providers),
):
    return await _finish_oauth("google", request, db, settings, issuer, providers)


@router.get("/github")
async def github_start(
    request: Request,
    redirect: Optional[str] = None,
    providers: OAuthProviders = Depends(get_oauth_providers),
):
    return await _start_oauth("github", request, redirect, providers)


@router.get("/github/callback")
async def github_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
    providers: OAuthProviders = Depends(get_oauth_providers),
):
    return await _finish_oauth("github", request, db, settings, issuer, providers)
