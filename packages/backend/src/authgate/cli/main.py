"""authgate CLI — database setup, seed data, smoke checks.

Usage:
    authgate init-db          # Create tables (dev; use alembic in prod)
    authgate seed-roles       # Create the "user" and "admin" roles
    authgate verify-role      # Register a throwaway user, check role + token
    authgate serve            # Run the API with uvicorn
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import sys
import time

import click

from authgate.auth.tokens import TokenIssuer
from authgate.config import Settings, get_settings
from authgate.db.engine import build_engine, build_session_factory
from authgate.db.models import Base
from authgate.errors import AuthError
from authgate.logging_config import configure_logging
from authgate.services.password_verifier import PasswordVerifier
from authgate.services.roles import RoleDirectory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _settings() -> Settings:
    settings = get_settings()
    configure_logging(debug=settings.debug, environment=settings.environment)
    return settings


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="authgate")
def main():
    """authgate — sign-in service administration."""


@main.command("init-db")
def init_db():
    """Create all tables from the ORM models."""
    _run(_init_db_impl(_settings()))
    click.secho("Tables created", fg="green")


async def _init_db_impl(settings: Settings):
    engine = build_engine(settings)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


@main.command("seed-roles")
def seed_roles():
    """Create any missing default roles (idempotent)."""
    created = _run(_seed_roles_impl(_settings()))
    if created:
        click.secho(f"Created roles: {', '.join(created)}", fg="green")
    else:
        click.echo("All roles already present")


async def _seed_roles_impl(settings: Settings) -> list[str]:
    engine = build_engine(settings)
    try:
        async with build_session_factory(engine)() as db:
            return await RoleDirectory(db, default_role=settings.default_role).seed()
    finally:
        await engine.dispose()


@main.command("verify-role")
def verify_role():
    """Register a throwaway email user and check its role end to end."""
    try:
        role = _run(_verify_role_impl(_settings()))
    except (AuthError, RuntimeError) as e:
        click.secho(f"Verification failed: {e}", fg="red", err=True)
        sys.exit(1)
    click.secho(f"Verification successful (role={role})", fg="green")


async def _verify_role_impl(settings: Settings) -> str:
    email = f"test-role-{int(time.time() * 1000)}@example.com"
    engine = build_engine(settings)
    try:
        async with build_session_factory(engine)() as db:
            click.echo(f"Registering user: {email}")
            verifier = PasswordVerifier(
                db,
                default_role=settings.default_role,
                hash_rounds=settings.bcrypt_rounds,
            )
            user = await verifier.register(email, "password123", "Test Role User")
            click.echo(f"User created with role: {user.role.name}")
            if user.role.name != settings.default_role:
                raise RuntimeError("Role assignment failed")

            issuer = TokenIssuer(settings)
            claims = issuer.verify(issuer.issue(user))
            click.echo(f"Token decoded: {claims.to_dict()}")
            if claims.role != settings.default_role:
                raise RuntimeError("Token role mismatch")
            return claims.role
    finally:
        await engine.dispose()


@main.command()
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(reload: bool):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "authgate.main:get_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
