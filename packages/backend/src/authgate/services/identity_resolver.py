"""Identity resolver — maps a sign-in assertion onto exactly one user.

Learn: Every OAuth callback ends here. Given (provider, provider_id, email)
the resolver tries, in order:

1. Exact identity match → returning user. Refresh the stored provider
   tokens and email. A missing refresh token never overwrites a stored
   one (providers usually only send it on the first consent).
2. Email match → account linking. Append the new identity to the user
   who already owns that email. One person signing in with Google and
   GitHub on the same address ends up with one account.
3. No match → new user, with the default role.

Steps 2 and 3 are inserts guarded by unique constraints on
(provider, provider_id) and users.email. Two concurrent first-time
callbacks for the same account race; the loser gets an IntegrityError,
rolls back, and runs the lookup again, which now finds the winner's row.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.db.models import Provider, ProviderIdentity, User
from authgate.errors import MissingEmailError
from authgate.services.credential_store import CredentialStore
from authgate.services.roles import RoleDirectory

logger = structlog.get_logger()

MAX_ATTEMPTS = 2


def normalize_email(email: str) -> str:
    return email.strip().lower()


def default_display_name(
    email: str, display_name: Optional[str] = None, username: Optional[str] = None
) -> str:
    """Profile display name, else username, else the local part of the email."""
    return display_name or username or email.split("@")[0]


@dataclass
class IdentityAssertion:
    """A provider's claim about who is signing in."""

    provider: Provider
    provider_id: str
    email: Optional[str]
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None


class IdentityResolver:
    def __init__(self, db: AsyncSession, default_role: str = "user"):
        self.store = CredentialStore(db)
        self.roles = RoleDirectory(db, default_role=default_role)

    async def resolve(self, assertion: IdentityAssertion) -> User:
        """Return the user to sign in as, creating or linking as needed.

        Raises MissingEmailError (before touching the store) when the
        assertion has no email, MissingDefaultRoleError when a new account
        is needed but the default role was never seeded.
        """
        if not assertion.email or not assertion.email.strip():
            raise MissingEmailError()

        provider = Provider(assertion.provider)
        if provider is Provider.EMAIL:
            raise ValueError("password identities are handled by PasswordVerifier")

        email = normalize_email(assertion.email)
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return await self._resolve_once(provider, assertion, email)
            except IntegrityError:
                await self.store.rollback()
                if attempt == MAX_ATTEMPTS:
                    raise
                logger.warning(
                    "auth.resolve_conflict",
                    provider=provider.value,
                    provider_id=assertion.provider_id,
                )

    async def create_user(
        self,
        email: str,
        display_name: str,
        identity: ProviderIdentity,
        avatar: Optional[str] = None,
    ) -> User:
        """Insert a new user with the default role and one linked identity."""
        role_id = await self.roles.default_role_id()
        user = User(
            email=email,
            display_name=display_name,
            avatar=avatar,
            role_id=role_id,
        )
        user.link(identity)
        await self.store.add(user)
        return await self.store.commit(user)

    # ─── Internals ──────────────────────────────────────

    async def _resolve_once(
        self, provider: Provider, assertion: IdentityAssertion, email: str
    ) -> User:
        # 1. Returning user
        user = await self.store.find_by_identity(provider, assertion.provider_id)
        if user:
            identity = user.find_provider(provider, assertion.provider_id)
            identity.access_token = assertion.access_token
            if assertion.refresh_token:
                identity.refresh_token = assertion.refresh_token
            identity.email = email
            user = await self.store.commit(user)
            logger.info("auth.user_signed_in", provider=provider.value, email=email)
            return user

        # 2. Same email, new provider → link
        user = await self.store.find_by_email(email)
        if user:
            user.link(self._new_identity(provider, assertion, email))
            user = await self.store.commit(user)
            logger.info("auth.provider_linked", provider=provider.value, email=email)
            return user

        # 3. Never seen
        user = await self.create_user(
            email,
            default_display_name(email, assertion.display_name, assertion.username),
            self._new_identity(provider, assertion, email),
            avatar=assertion.avatar_url,
        )
        logger.info("auth.user_created", provider=provider.value, email=email)
        return user

    @staticmethod
    def _new_identity(
        provider: Provider, assertion: IdentityAssertion, email: str
    ) -> ProviderIdentity:
        return ProviderIdentity(
            provider=provider.value,
            provider_id=assertion.provider_id,
            email=email,
            access_token=assertion.access_token,
            refresh_token=assertion.refresh_token or None,
        )
