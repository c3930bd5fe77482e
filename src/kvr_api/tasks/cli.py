# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""KVR admin CLI: operational commands for the auth store.

Commands:
    users create        Create a local (password) identity.
    orgs create         Create an organization.
    orgs add-member     Add an identity to an organization.
    tokens cleanup      Delete expired refresh tokens.

Environment:
    DATABASE_URL        Async SQLAlchemy URL.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import typer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kvr_api.adapters.uow.sqlalchemy_uow import SqlAlchemyUnitOfWork
from kvr_api.domain.enums.auth import OrgRole, Role
from kvr_api.domain.interfaces.repositories.auth_repositories import (
    IdentityRepository,
    MembershipRepository,
    OrganizationRepository,
    RefreshTokenRepository,
)
from kvr_api.domain.services.role_mapping import map_org_role, map_roles
from kvr_api.infrastructure.logging.logger import configure_root_logging, get_json_logger
from kvr_api.infrastructure.security.passwords import hash_password

configure_root_logging()
log = get_json_logger(__name__)

app = typer.Typer(add_completion=False, no_args_is_help=True)
users_app = typer.Typer(no_args_is_help=True)
orgs_app = typer.Typer(no_args_is_help=True)
tokens_app = typer.Typer(no_args_is_help=True)
app.add_typer(users_app, name="users")
app.add_typer(orgs_app, name="orgs")
app.add_typer(tokens_app, name="tokens")


@asynccontextmanager
async def _unit_of_work(database_url: str) -> AsyncIterator[SqlAlchemyUnitOfWork]:
    """One-shot UoW on a private engine, disposed when the command finishes."""
    engine = create_async_engine(database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    try:
        async with SqlAlchemyUnitOfWork(session_factory=session_factory) as uow:
            yield uow
    finally:
        await engine.dispose()


@users_app.command("create")
def create_user(
    database_url: str = typer.Option(
        ..., envvar="DATABASE_URL", help="Async SQLAlchemy URL."
    ),  # noqa: B008
    email: str = typer.Option(..., help="Login email."),  # noqa: B008
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True
    ),  # noqa: B008
    name: str | None = typer.Option(None, help="Display name."),  # noqa: B008
    role: list[str] = typer.Option(  # noqa: B008
        [Role.USER.value], help="Application role; repeat for several."
    ),
) -> None:
    """Create a local identity with a bcrypt password hash."""
    if len(password) < 8:
        raise typer.BadParameter("password must be at least 8 characters", param_hint="password")

    async def _run() -> str:
        async with _unit_of_work(database_url) as uow:
            identities = uow.get_repository(IdentityRepository)
            if await identities.get_by_email(email) is not None:
                raise typer.BadParameter(f"identity {email!r} already exists", param_hint="email")
            identity = await identities.create(
                email=email,
                roles=map_roles(role),
                password_hash=hash_password(password),
                display_name=name,
            )
            await uow.commit()
        return identity.id

    identity_id = asyncio.run(_run())
    log.info("cli.user_created", extra={"extra": {"user_id": identity_id}})
    typer.echo(identity_id)


@orgs_app.command("create")
def create_org(
    database_url: str = typer.Option(
        ..., envvar="DATABASE_URL", help="Async SQLAlchemy URL."
    ),  # noqa: B008
    org_id: str = typer.Option(..., help="Organization id as issued by TAH."),  # noqa: B008
    name: str = typer.Option(..., help="Display name."),  # noqa: B008
) -> None:
    """Create an organization record."""

    async def _run() -> str:
        async with _unit_of_work(database_url) as uow:
            orgs = uow.get_repository(OrganizationRepository)
            if await orgs.get_by_org_id(org_id) is not None:
                raise typer.BadParameter(f"organization {org_id!r} already exists")
            org = await orgs.create(org_id=org_id, name=name)
            await uow.commit()
        return org.id

    typer.echo(asyncio.run(_run()))


@orgs_app.command("add-member")
def add_member(
    database_url: str = typer.Option(
        ..., envvar="DATABASE_URL", help="Async SQLAlchemy URL."
    ),  # noqa: B008
    email: str = typer.Option(..., help="Identity email."),  # noqa: B008
    org_id: str = typer.Option(..., help="External organization id."),  # noqa: B008
    role: str = typer.Option(OrgRole.MEMBER.value, help="Organization role."),  # noqa: B008
    default: bool = typer.Option(  # noqa: B008
        False, "--default", help="Make this the primary org."
    ),
) -> None:
    """Add (or re-role) an identity's membership in an organization."""

    async def _run() -> None:
        async with _unit_of_work(database_url) as uow:
            identity = await uow.get_repository(IdentityRepository).get_by_email(email)
            org = await uow.get_repository(OrganizationRepository).get_by_org_id(org_id)
            if identity is None or org is None:
                raise typer.BadParameter("unknown identity or organization")
            memberships = uow.get_repository(MembershipRepository)
            mapped = map_org_role(role)
            if await memberships.get(identity.id, org.id) is None:
                await memberships.add(
                    identity_id=identity.id,
                    organization_id=org.id,
                    role=mapped,
                    is_default=default,
                )
            else:
                await memberships.set_role(identity.id, org.id, mapped)
            await uow.commit()

    asyncio.run(_run())
    log.info("cli.member_added", extra={"extra": {"org_id": org_id}})


@tokens_app.command("cleanup")
def cleanup_tokens(
    database_url: str = typer.Option(
        ..., envvar="DATABASE_URL", help="Async SQLAlchemy URL."
    ),  # noqa: B008
) -> None:
    """Delete refresh tokens whose expiry has passed."""

    async def _run() -> int:
        async with _unit_of_work(database_url) as uow:
            removed = await uow.get_repository(RefreshTokenRepository).delete_expired(
                datetime.now(tz=UTC)
            )
            await uow.commit()
        return removed

    removed = asyncio.run(_run())
    log.info("cli.refresh_tokens_cleaned", extra={"extra": {"removed": removed}})
    typer.echo(f"removed {removed} expired refresh token(s)")


if __name__ == "__main__":  # pragma: no cover
    app()
