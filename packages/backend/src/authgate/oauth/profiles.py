"""Provider profile payloads, validated at the adapter boundary.

Learn: Google (OIDC userinfo) and GitHub (REST /user) describe a person
differently. Each is parsed into a small pydantic model with the same
fields {id, email, display_name, username, avatar_url}, so the resolver
never sees a raw provider dict.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, field_validator

from authgate.db.models import Provider
from authgate.errors import MissingEmailError
from authgate.services.identity_resolver import IdentityAssertion


class OAuthProfile(BaseModel):
    provider: str
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        # GitHub ids are integers
        return str(v) if isinstance(v, int) else v

    def to_assertion(
        self, access_token: str, refresh_token: Optional[str] = None
    ) -> IdentityAssertion:
        """Build the resolver input. A profile without email is rejected here."""
        if not self.email:
            raise MissingEmailError()
        return IdentityAssertion(
            provider=Provider(self.provider),
            provider_id=self.id,
            email=self.email,
            access_token=access_token,
            refresh_token=refresh_token,
            display_name=self.display_name,
            username=self.username,
            avatar_url=self.avatar_url,
        )


class GoogleProfile(OAuthProfile):
    provider: Literal["google"] = "google"

    @classmethod
    def from_userinfo(cls, userinfo: dict) -> "GoogleProfile":
        return cls(
            id=userinfo["sub"],
            email=userinfo.get("email"),
            display_name=userinfo.get("name"),
            avatar_url=userinfo.get("picture"),
        )


class GithubProfile(OAuthProfile):
    provider: Literal["github"] = "github"

    @classmethod
    def from_api(cls, user: dict, emails: Optional[list[dict]] = None) -> "GithubProfile":
        """Parse GET /user, falling back to GET /user/emails for private emails."""
        email = user.get("email") or _primary_email(emails or [])
        return cls(
            id=user["id"],
            email=email,
            display_name=user.get("name"),
            username=user.get("login"),
            avatar_url=user.get("avatar_url"),
        )


def _primary_email(emails: list[dict]) -> Optional[str]:
    verified = [e for e in emails if e.get("verified")]
    for entry in verified:
        if entry.get("primary"):
            return entry.get("email")
    return verified[0].get("email") if verified else None


ProviderProfile = Union[GoogleProfile, GithubProfile]
