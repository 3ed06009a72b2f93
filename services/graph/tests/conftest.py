import os
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable

# Limits off and no Redis for the slowapi limiter; must be set before app import.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.main import app
from app.database import get_db
from app.accounts import service as accounts
from app.accounts.constants import (
    ACTIVE_ACCOUNT_ID_HEADER,
    ACTIVE_ACCOUNT_TYPE_HEADER,
    AccountType,
    FollowPolicy,
)
from app.accounts.models import Business, User
from app.accounts.persona import Principal
from shared.auth.config import AuthSettings
from shared.auth.tokens import create_access_token
from shared.database.postgres import Base, get_async_engine, get_session


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = get_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'graph.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        async for session in get_session(session_factory):
            yield session

    app.dependency_overrides[get_db] = _get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Factories ──────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def make_user(session_factory) -> Callable[..., Awaitable[User]]:
    async def _make(name: str = "User", policy: FollowPolicy = FollowPolicy.ANYONE) -> User:
        async with session_factory() as session:
            user = await accounts.create_user(session, name, follow_policy=policy)
            await session.commit()
            return user

    return _make


@pytest_asyncio.fixture
async def make_business(session_factory) -> Callable[..., Awaitable[Business]]:
    async def _make(owner: User, name: str = "Acme") -> Business:
        async with session_factory() as session:
            business = await accounts.create_business(session, Principal(id=owner.id), name)
            await session.commit()
            return business

    return _make


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    settings = AuthSettings()

    def _headers(user_id: uuid.UUID, business_id: uuid.UUID | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {create_access_token(user_id, settings)}"}
        if business_id is not None:
            headers[ACTIVE_ACCOUNT_TYPE_HEADER] = AccountType.BUSINESS.value
            headers[ACTIVE_ACCOUNT_ID_HEADER] = str(business_id)
        return headers

    return _headers
