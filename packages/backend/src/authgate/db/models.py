"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys, stored with the portable Uuid type so the same
  models run on PostgreSQL and on SQLite in tests
- A user owns an ordered list of provider identities (google, github, email)
- (provider, provider_id) is unique across the whole table: one external
  account maps to exactly one user
- users.email is unique; emails are normalized before they get here
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class Provider(str, enum.Enum):
    GOOGLE = "google"
    GITHUB = "github"
    EMAIL = "email"


class Role(Base):
    """Reference data: named roles carried in issued tokens.

    Learn: Roles are seeded out-of-band (`authgate seed-roles`). Sign-in
    flows only ever read this table.
    """

    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class User(Base):
    """The durable identity anchor every sign-in resolves to."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("roles.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    role: Mapped["Role"] = relationship()
    providers: Mapped[list["ProviderIdentity"]] = relationship(
        back_populates="user",
        order_by="ProviderIdentity.position",
        cascade="all, delete-orphan",
    )

    def find_provider(
        self, provider: Provider, provider_id: Optional[str] = None
    ) -> Optional["ProviderIdentity"]:
        """First linked identity of this kind (and key, when given)."""
        for identity in self.providers:
            if identity.provider != provider.value:
                continue
            if provider_id is None or identity.provider_id == provider_id:
                return identity
        return None

    def link(self, identity: "ProviderIdentity") -> None:
        """Append an identity, keeping insertion order."""
        identity.position = len(self.providers)
        self.providers.append(identity)


class ProviderIdentity(Base):
    """One linked credential under a user.

    Learn: provider_id is the stable identity key — the OAuth subject for
    google/github, the email address for password sign-in. The bcrypt hash
    lives in its own column so the key never changes when a password does.
    """

    __tablename__ = "provider_identities"
    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_id", name="uq_provider_identities_provider_key"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    credential_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # email provider only
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="providers")
