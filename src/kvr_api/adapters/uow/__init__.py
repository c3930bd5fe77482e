# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""
Unit of Work implementations (Adapters Layer)

Purpose:
    Provide concrete UnitOfWork implementations backed by SQLAlchemy
    AsyncSession. Application-layer code depends only on the `UnitOfWork`
    protocol from `kvr_api.application.uow`.

Exports:
    - SqlAlchemyUnitOfWork
"""

from __future__ import annotations

from .sqlalchemy_uow import SqlAlchemyUnitOfWork

__all__ = ["SqlAlchemyUnitOfWork"]
