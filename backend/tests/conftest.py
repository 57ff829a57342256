"""Shared fixtures: a throwaway SQLite database per test and an ASGI client factory."""

import os


# Configure the app before anything imports coursetrack settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./.pytest-coursetrack.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTH_DISABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from coursetrack.auth import STUDENT_HEADER
from coursetrack.courses import models as _courses  # noqa: F401
from coursetrack.database.base import Base
from coursetrack.database.session import get_session_maker
from coursetrack.notifications import models as _notifications  # noqa: F401
from coursetrack.progress import models as _progress  # noqa: F401


ClientFactory = Callable[..., Awaitable[AsyncClient]]


@pytest_asyncio.fixture
async def session_maker(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'coursetrack.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client_factory(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[ClientFactory, None]:
    """Build API clients bound to the test database, one student per client."""
    from coursetrack.main import app
    from coursetrack.middleware.security import limiter

    app.dependency_overrides[get_session_maker] = lambda: session_maker
    limiter.reset()
    clients: list[AsyncClient] = []

    async def factory(student_id: str | None = "student-1") -> AsyncClient:
        headers = {STUDENT_HEADER: student_id} if student_id else {}
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()
