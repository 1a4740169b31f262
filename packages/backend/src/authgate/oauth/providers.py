"""OAuth2 provider registry (Authlib) and callback adapters.

Learn: Authlib runs the authorization-code handshake: redirect to the
provider, check state, exchange the code. Its Starlette integration
keeps the state in request.session, which is why main.py installs
SessionMiddleware. Our part starts once a token comes back: fetch the
profile, validate it, and hand an OAuthCallback to the resolver.

A provider is registered only when both client id and secret are
configured. Unconfigured providers are logged once at startup.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from authlib.integrations.starlette_client import OAuth
from starlette.requests import Request

from authgate.config import Settings
from authgate.oauth.profiles import GithubProfile, GoogleProfile, ProviderProfile
from authgate.services.identity_resolver import IdentityAssertion

logger = structlog.get_logger()

GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"


@dataclass
class OAuthCallback:
    """What a successful provider handshake hands to the core."""

    access_token: str
    refresh_token: Optional[str]
    profile: ProviderProfile

    def to_assertion(self) -> IdentityAssertion:
        return self.profile.to_assertion(self.access_token, self.refresh_token)


class OAuthProviders:
    def __init__(self, settings: Settings):
        self.oauth = OAuth()
        self.callback_url = settings.callback_url.rstrip("/")
        self.configured: set[str] = set()

        if settings.google_enabled:
            self.oauth.register(
                name="google",
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret,
                server_metadata_url=GOOGLE_METADATA_URL,
                client_kwargs={"scope": "openid email profile"},
            )
            self.configured.add("google")
            logger.info("oauth.provider_configured", provider="google")
        else:
            logger.warning("oauth.provider_missing_credentials", provider="google")

        if settings.github_enabled:
            self.oauth.register(
                name="github",
                client_id=settings.github_client_id,
                client_secret=settings.github_client_secret,
                access_token_url="https://github.com/login/oauth/access_token",
                authorize_url="https://github.com/login/oauth/authorize",
                api_base_url="https://api.github.com/",
                client_kwargs={"scope": "user:email"},
            )
            self.configured.add("github")
            logger.info("oauth.provider_configured", provider="github")
        else:
            logger.warning("oauth.provider_missing_credentials", provider="github")

    def is_configured(self, name: str) -> bool:
        return name in self.configured

    def redirect_uri(self, name: str) -> str:
        return f"{self.callback_url}/auth/{name}/callback"

    async def authorize_redirect(self, request: Request, name: str):
        client = self.oauth.create_client(name)
        return await client.authorize_redirect(request, self.redirect_uri(name))

    async def fetch_callback(self, request: Request, name: str) -> OAuthCallback:
        """Finish the handshake and return tokens plus validated profile.

        Raises authlib's OAuthError on a failed exchange, httpx errors on
        profile fetch failures, pydantic ValidationError on odd payloads.
        """
        client = self.oauth.create_client(name)
        token = await client.authorize_access_token(request)

        if name == "google":
            userinfo = token.get("userinfo") or await client.userinfo(token=token)
            profile = GoogleProfile.from_userinfo(dict(userinfo))
        else:
            resp = await client.get("user", token=token)
            resp.raise_for_status()
            user = resp.json()
            emails = None
            if not user.get("email"):
                resp = await client.get("user/emails", token=token)
                emails = resp.json() if resp.status_code == 200 else []
            profile = GithubProfile.from_api(user, emails)

        return OAuthCallback(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            profile=profile,
        )
