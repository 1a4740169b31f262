"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. App-scoped
collaborators (settings, token issuer, feature gate, OAuth registry)
are built once in create_app() and kept on app.state; the getters
below hand them to routes, and tests swap them with
app.dependency_overrides.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from authgate.auth.tokens import TokenClaims, TokenIssuer
from authgate.config import Settings
from authgate.errors import InvalidTokenError
from authgate.oauth.providers import OAuthProviders
from authgate.services.feature_gate import FeatureGateClient


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_feature_gate(request: Request) -> FeatureGateClient:
    return request.app.state.feature_gate


def get_oauth_providers(request: Request) -> OAuthProviders:
    return request.app.state.oauth_providers


async def get_current_claims(
    authorization: Optional[str] = Header(None),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> TokenClaims:
    """Claims of the Bearer token (401 if missing or invalid)."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return issuer.verify(authorization[7:])
    except InvalidTokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
