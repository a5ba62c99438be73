from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from taskhub.db.meta import meta
from taskhub.db.models import load_all_models
from taskhub.project_manager import services
from taskhub.project_manager.enums import UserRole
from taskhub.project_manager.models import Project, User
from taskhub.project_manager.repositories import ProjectRepository, UserRepository
from taskhub.web.application import get_app

PASSWORD_HASH = "not-a-real-hash"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """
    Backend for anyio pytest plugin.

    :return: backend name.
    """
    return "asyncio"


@pytest.fixture
async def _engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create an in-memory database with every table.

    :yield: new engine.
    """
    load_all_models()
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(meta.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(_engine, expire_on_commit=False)


@pytest.fixture
async def dbsession(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Session for tests that call handlers and repositories directly.

    :yield: database session.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(
    dbsession: AsyncSession,
) -> Callable[..., Awaitable[User]]:
    """Factory for persisted users."""
    counter = {"n": 0}

    async def _make_user(role: UserRole = UserRole.MEMBER, name: str = "") -> User:
        counter["n"] += 1
        n = counter["n"]
        return await UserRepository(dbsession).create(
            name=name or f"user{n}",
            email=f"user{n}@example.com",
            password_hash=PASSWORD_HASH,
            role=role,
        )

    return _make_user


@pytest.fixture
def make_project(
    dbsession: AsyncSession,
) -> Callable[..., Awaitable[Project]]:
    """Factory for persisted projects with a manager and a team."""

    async def _make_project(
        manager: User, team: tuple[User, ...] = (), name: str = "Apollo",
    ) -> Project:
        projects = ProjectRepository(dbsession)
        project = await projects.create(
            name=name,
            description="Moonshot",
            manager_id=manager.id,
            team=list(team),
        )
        return await projects.find_by_id(project.id)

    return _make_project


@pytest.fixture
def fastapi_app(session_factory: async_sessionmaker[AsyncSession]) -> FastAPI:
    """
    Fixture for creating FastAPI app.

    The lifespan is not run, so the test database is attached directly.

    :return: fastapi app.
    """
    application = get_app()
    application.state.db_session_factory = session_factory
    return application


@pytest.fixture
async def client(fastapi_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Fixture that creates client for requesting server.

    :param fastapi_app: the application.
    :yield: client for the app.
    """
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[tuple[User, dict[str, Any]]]]:
    """Factory for committed users together with their bearer header."""
    counter = {"n": 0}

    async def _auth_headers(role: UserRole = UserRole.MEMBER) -> tuple[User, dict[str, Any]]:
        counter["n"] += 1
        async with session_factory() as session:
            user = await UserRepository(session).create(
                name=f"api{counter['n']}",
                email=f"api{counter['n']}@example.com",
                password_hash=PASSWORD_HASH,
                role=role,
            )
            await session.commit()
        token = services.issue_token(user)
        return user, {"Authorization": f"Bearer {token}"}

    return _auth_headers
