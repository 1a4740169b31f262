"""Password verifier — the email/password sign-in path.

Learn: A password sign-in is just another provider identity
(provider="email", provider_id=<email>, credential_hash=<bcrypt>).

Registering with an email that already belongs to an OAuth-only account
links a password to that account without further proof of ownership.
That is a deliberate, kept policy; it is logged as auth.password_linked
so it can be audited.
"""

from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.auth.password import BCRYPT_ROUNDS, hash_password, verify_password
from authgate.db.models import Provider, ProviderIdentity, User
from authgate.errors import (
    DuplicateAccountError,
    InvalidCredentialsError,
    MissingFieldsError,
)
from authgate.services.identity_resolver import IdentityResolver, normalize_email

logger = structlog.get_logger()


class PasswordVerifier:
    def __init__(
        self,
        db: AsyncSession,
        default_role: str = "user",
        hash_rounds: int = BCRYPT_ROUNDS,
    ):
        self.resolver = IdentityResolver(db, default_role=default_role)
        self.store = self.resolver.store
        self.hash_rounds = hash_rounds

    async def register(
        self, email: Optional[str], password: Optional[str], display_name: Optional[str]
    ) -> User:
        """Create an account, or add a password to an OAuth-only account."""
        if not email or not email.strip() or not password or not display_name:
            raise MissingFieldsError()
        email = normalize_email(email)

        try:
            return await self._register_once(email, password, display_name)
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            await self.store.rollback()
            return await self._register_once(email, password, display_name)

    async def login(self, email: Optional[str], password: Optional[str]) -> User:
        """Return the user for valid credentials.

        Unknown email, no password identity and wrong password all raise
        the same InvalidCredentialsError.
        """
        if not email or not email.strip() or not password:
            raise MissingFieldsError("Missing email or password")
        email = normalize_email(email)

        user = await self.store.find_by_email(email)
        identity = user.find_provider(Provider.EMAIL) if user else None
        if identity is None or not verify_password(password, identity.credential_hash):
            logger.info("auth.login_failed", email=email)
            raise InvalidCredentialsError()

        logger.info("auth.user_logged_in", email=email)
        return user

    # ─── Internals ──────────────────────────────────────

    async def _register_once(self, email: str, password: str, display_name: str) -> User:
        user = await self.store.find_by_email(email)
        if user:
            if user.find_provider(Provider.EMAIL):
                raise DuplicateAccountError()
            user.link(self._email_identity(email, password))
            user = await self.store.commit(user)
            logger.warning("auth.password_linked", email=email)
            return user

        user = await self.resolver.create_user(
            email, display_name, self._email_identity(email, password)
        )
        logger.info("auth.user_registered", email=email)
        return user

    def _email_identity(self, email: str, password: str) -> ProviderIdentity:
        return ProviderIdentity(
            provider=Provider.EMAIL.value,
            provider_id=email,
            email=email,
            credential_hash=hash_password(password, rounds=self.hash_rounds),
        )
