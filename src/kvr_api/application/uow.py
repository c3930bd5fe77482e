# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Unit of Work (Application Layer).

Auth services never touch a session directly. Each operation that reads or
writes identities, organizations, API keys or refresh tokens opens one unit
of work from a :data:`UnitOfWorkFactory`, asks it for the repository
protocols it needs and commits explicitly. Leaving the ``async with`` block
without committing discards the work.

Implementations live in ``adapters/uow`` (SQLAlchemy) and in the test kit
(in-memory).

Layer:
    application
"""

from __future__ import annotations

from collections.abc import Callable
from types import TracebackType
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class UnitOfWork(Protocol):
    """Transactional scope over the auth repositories."""

    async def __aenter__(self) -> UnitOfWork: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None: ...

    async def commit(self) -> None:
        """Persist pending changes. May be called more than once per scope."""
        ...

    async def rollback(self) -> None: ...

    def get_repository(self, repo_type: type[Any]) -> Any:
        """Return the repository bound to this scope for protocol ``repo_type``.

        ``repo_type`` is one of the protocols in
        ``kvr_api.domain.interfaces.repositories.auth_repositories``.
        """
        ...


UnitOfWorkFactory = Callable[[], UnitOfWork]
