# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""SQLAlchemy-backed Unit of Work.

One ``AsyncSession`` per ``async with`` block; the auth repositories built
inside the block share it, so a login that rotates a refresh token and
touches the identity commits atomically.

Layer:
    adapters/uow
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import TracebackType
from typing import Any, Final

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kvr_api.adapters.repositories.api_key_repository import SqlAlchemyApiKeyRepository
from kvr_api.adapters.repositories.identity_repository import (
    SqlAlchemyIdentityRepository,
    SqlAlchemyMembershipRepository,
    SqlAlchemyOrganizationRepository,
)
from kvr_api.adapters.repositories.refresh_token_repository import (
    SqlAlchemyRefreshTokenRepository,
)
from kvr_api.domain.interfaces.repositories.auth_repositories import (
    ApiKeyRepository,
    IdentityRepository,
    MembershipRepository,
    OrganizationRepository,
    RefreshTokenRepository,
)

RepositoryFactory = Callable[[AsyncSession], Any]

AUTH_REPOSITORIES: Final[Mapping[type[Any], RepositoryFactory]] = {
    IdentityRepository: SqlAlchemyIdentityRepository,
    OrganizationRepository: SqlAlchemyOrganizationRepository,
    MembershipRepository: SqlAlchemyMembershipRepository,
    ApiKeyRepository: SqlAlchemyApiKeyRepository,
    RefreshTokenRepository: SqlAlchemyRefreshTokenRepository,
}


class SqlAlchemyUnitOfWork:
    """Unit of work over a single ``AsyncSession``.

    Example:
        async with SqlAlchemyUnitOfWork(session_factory=factory) as uow:
            identities = uow.get_repository(IdentityRepository)
            ...
            await uow.commit()
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        repositories: Mapping[type[Any], RepositoryFactory] = AUTH_REPOSITORIES,
    ) -> None:
        self._session_factory = session_factory
        self._factories = repositories
        self._session: AsyncSession | None = None
        self._repos: dict[type[Any], Any] = {}

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("unit of work is not active; use 'async with uow:' first")
        return self._session

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        if self._session is not None:
            raise RuntimeError("unit of work is already active")
        self._session = self._session_factory()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        session, self._session = self._session, None
        self._repos.clear()
        if session is not None:
            # close() discards anything not committed, error or not
            await session.close()
        return None

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        if self._session is not None:
            await self._session.rollback()

    def get_repository(self, repo_type: type[Any]) -> Any:
        session = self.session
        if repo_type not in self._repos:
            try:
                factory = self._factories[repo_type]
            except KeyError:
                name = getattr(repo_type, "__name__", repr(repo_type))
                raise KeyError(f"no repository registered for {name}") from None
            self._repos[repo_type] = factory(session)
        return self._repos[repo_type]
