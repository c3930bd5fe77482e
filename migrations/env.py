# migrations/env.py
# Copyright (c) KeyVault Registry.
# SPDX-License-Identifier: MIT
"""Alembic environment for the KVR auth schema.

The database URL comes from ``DATABASE_URL`` (after loading ``.env`` and
``.env.<ENVIRONMENT>`` without overriding exported variables) or, failing
that, ``sqlalchemy.url`` in alembic.ini. ``ENVIRONMENT`` must be set so a
migration is never pointed at the wrong database by accident.

SQLite targets run in batch mode, since SQLite cannot alter most column
definitions in place.

Usage:
    ENVIRONMENT=development alembic upgrade head
    ENVIRONMENT=development alembic upgrade head --sql
    ENVIRONMENT=development alembic -x show_url=1 upgrade head
"""

from __future__ import annotations

import asyncio
import logging
import logging.config
import os
from pathlib import Path

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import create_async_engine

from kvr_api.config.settings import Environment
from kvr_api.infrastructure.database.models import auth as _auth_models  # noqa: F401
from kvr_api.infrastructure.database.models.base import metadata

config = context.config
if config.config_file_name is not None:
    logging.config.fileConfig(config.config_file_name)
logger = logging.getLogger("alembic.env")

target_metadata = metadata

_ROOT = Path(__file__).resolve().parents[1]
for _name in (".env", f".env.{(os.getenv('ENVIRONMENT') or '').strip().lower()}"):
    if (_ROOT / _name).is_file():
        load_dotenv(_ROOT / _name, override=False)


def _database_url() -> str:
    env = (os.getenv("ENVIRONMENT") or "").strip().lower()
    known = sorted(e.value for e in Environment)
    if env not in known:
        raise RuntimeError(f"ENVIRONMENT must be one of {known} to run migrations; got {env!r}")

    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("no database configured: set DATABASE_URL")

    show = context.get_x_argument(as_dictionary=True).get("show_url") == "1"
    if show or os.getenv("ALEMBIC_SHOW_URL") == "1":
        logger.info("migrating %s", make_url(url).render_as_string(hide_password=True))
    return url


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def run_migrations_offline() -> None:
    url = _database_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=_is_sqlite(url),
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_with(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def _run_online() -> None:
    engine = create_async_engine(
        _database_url(), poolclass=pool.NullPool, echo=os.getenv("ECHO_SQL") == "1"
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(_run_online())
