# tests/conftest.py
from __future__ import annotations

import os
import tempfile

from fixtures.auth_testkit import TAH_AUDIENCE, TAH_ISSUER, TEST_JWT_SECRET

# The eager ``kvr_api.main.app`` reads settings at import time, so the
# environment must be in place before any application module is imported.
_DB_DIR = tempfile.mkdtemp(prefix="kvr-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/kvr.db"
os.environ["AUTH_MODE"] = "dual"
os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ["TAH_ISSUER"] = TAH_ISSUER
os.environ["TAH_AUDIENCE"] = TAH_AUDIENCE
os.environ.pop("DEV_AUTH_BYPASS", None)
os.environ.pop("ALLOWED_ORIGINS", None)

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

import kvr_api.infrastructure.database.models.auth  # noqa: E402,F401
import kvr_api.infrastructure.database.session as db_session  # noqa: E402
from fixtures.api_harness import ApiHarness  # noqa: E402
from fixtures.auth_testkit import (  # noqa: E402
    FixedClock,
    MemoryStore,
    RsaSigner,
    make_rsa_signer,
    make_settings,
)
from kvr_api.dependencies.core.container import build_container  # noqa: E402
from kvr_api.infrastructure.database.models.base import Base  # noqa: E402
from kvr_api.main import create_app  # noqa: E402


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio (not trio)."""
    return "asyncio"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture(scope="session")
def signer() -> RsaSigner:
    """One RSA key pair per session; key generation is slow."""
    return make_rsa_signer("key-1")


# ---------------------------------------------------------------------------
# Full application over a throwaway SQLite database
# ---------------------------------------------------------------------------
async def _open_harness(tmp_path: Path, **overrides: Any) -> ApiHarness:
    settings = make_settings(DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path}/kvr.db", **overrides)
    await db_session.dispose_engine()
    db_session.init_engine_and_sessionmaker(settings)
    async with db_session.get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    container = build_container(settings)
    app = create_app(settings, container=container)
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )
    return ApiHarness(app=app, client=client, container=container, settings=settings)


async def _close_harness(harness: ApiHarness) -> None:
    await harness.client.aclose()
    await harness.settle()
    await db_session.dispose_engine()


@pytest.fixture
async def api(tmp_path: Path) -> AsyncGenerator[ApiHarness, None]:
    """Dual-mode app (local + TAH + API keys) over SQLite."""
    harness = await _open_harness(tmp_path)
    try:
        yield harness
    finally:
        await _close_harness(harness)


@pytest.fixture
async def api_factory(
    tmp_path: Path,
) -> AsyncGenerator[Callable[..., Awaitable[ApiHarness]], None]:
    """Build the app with setting overrides inside the test (one app per test).

    Usage:
        harness = await api_factory(AUTH_MODE="local")
    """
    opened: list[ApiHarness] = []

    async def _factory(**overrides: Any) -> ApiHarness:
        harness = await _open_harness(tmp_path, **overrides)
        opened.append(harness)
        return harness

    try:
        yield _factory
    finally:
        for harness in opened:
            await _close_harness(harness)
