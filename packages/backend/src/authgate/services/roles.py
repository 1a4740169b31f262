"""Role directory — read access to seeded roles, plus the seeding itself.

Learn: Sign-in flows only read roles. Creating them is a deployment
step (`authgate seed-roles`), which is why a missing default role is a
configuration error rather than something we repair on the fly.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.db.models import Role
from authgate.errors import MissingDefaultRoleError

logger = structlog.get_logger()

DEFAULT_ROLES = {
    "user": "Default role for every signed-up account",
    "admin": "Full access to platform administration",
}


class RoleDirectory:
    def __init__(self, db: AsyncSession, default_role: str = "user"):
        self.db = db
        self.default_role = default_role

    async def get_by_name(self, name: str) -> Role | None:
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalars().first()

    async def default_role_id(self):
        """Id of the role new accounts get. Raises if it was never seeded."""
        role = await self.get_by_name(self.default_role)
        if role is None:
            logger.error("auth.default_role_missing", role=self.default_role)
            raise MissingDefaultRoleError(
                f'Default role "{self.default_role}" not found'
            )
        return role.id

    async def seed(self, roles: dict[str, str] | None = None) -> list[str]:
        """Create any missing roles. Returns the names that were created."""
        created = []
        for name, description in (roles or DEFAULT_ROLES).items():
            if await self.get_by_name(name) is None:
                self.db.add(Role(name=name, description=description))
                created.append(name)
        await self.db.commit()
        if created:
            logger.info("roles.seeded", roles=created)
        return created
