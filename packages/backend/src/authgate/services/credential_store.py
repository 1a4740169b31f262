"""Credential store — persistence for users and their linked identities.

Learn: Every read eagerly loads `role` and `providers` with selectinload.
Async sessions can't lazy-load, and callers (token issuer, API schemas)
need the role name right away.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from authgate.db.models import Provider, ProviderIdentity, User


def _with_relations(stmt):
    return stmt.options(
        selectinload(User.role),
        selectinload(User.providers),
    ).execution_options(populate_existing=True)


class CredentialStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: uuid.UUID) -> User | None:
        result = await self.db.execute(
            _with_relations(select(User).where(User.id == user_id))
        )
        return result.scalars().first()

    async def find_by_identity(
        self, provider: Provider, provider_id: str
    ) -> User | None:
        """User owning the (provider, provider_id) identity, if any."""
        stmt = (
            select(User)
            .join(ProviderIdentity, ProviderIdentity.user_id == User.id)
            .where(
                ProviderIdentity.provider == provider.value,
                ProviderIdentity.provider_id == provider_id,
            )
        )
        result = await self.db.execute(_with_relations(stmt))
        return result.scalars().first()

    async def find_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            _with_relations(select(User).where(User.email == email))
        )
        return result.scalars().first()

    async def add(self, user: User) -> None:
        self.db.add(user)

    async def commit(self, user: User) -> User:
        """Persist pending changes and return the user with role loaded.

        IntegrityError propagates; the caller decides whether to retry.
        """
        await self.db.commit()
        return await self.get(user.id)

    async def rollback(self) -> None:
        await self.db.rollback()
