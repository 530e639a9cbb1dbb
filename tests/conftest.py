"""Shared fixtures: a throw-away SQLite database, the app and seeded principals."""

import os
import tempfile
from collections.abc import AsyncIterator

# Configure before backoffice is imported: the engine reads DATABASE_URL at import time.
_DB_DIR = tempfile.mkdtemp(prefix="backoffice-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-tests-please-change")
os.environ.pop("MAIL_HOST", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.database.base import Base
from backoffice.core.database.engine import AsyncSessionLocal, engine, import_models
from backoffice.features.mail.outbox import MailOutbox
from backoffice.features.permissions.authorization import AuthorizationContext, build_authorization_context
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.users.models import User
from backoffice.main import app
from tests.factories import RecordingTransport, make_role, make_user


@pytest_asyncio.fixture(autouse=True)
async def database() -> AsyncIterator[None]:
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as db:
        yield db


@pytest.fixture
def cache() -> PermissionCache:
    return PermissionCache()


@pytest.fixture
def authorization(cache: PermissionCache) -> AuthorizationContext:
    return AuthorizationContext(cache=cache)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def outbox(transport: RecordingTransport) -> MailOutbox:
    return MailOutbox(transport=transport, max_attempts=3, retry_delay=0)


@pytest_asyncio.fixture
async def client(outbox: MailOutbox) -> AsyncIterator[AsyncClient]:
    # ASGITransport does not run startup handlers; wire app state here.
    app.state.authorization = build_authorization_context()
    app.state.mail_outbox = outbox
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def superadmin(session: AsyncSession) -> User:
    role = await make_role(session, "superadmin")
    return await make_user(session, "root@example.com", (role,), name="Super Admin")


@pytest_asyncio.fixture
async def admin(session: AsyncSession) -> User:
    role = await make_role(
        session,
        "admin",
        ("view_users", "create_users", "edit_users", "delete_users", "view_activity_logs"),
    )
    return await make_user(session, "admin@example.com", (role,), name="Admin")


@pytest_asyncio.fixture
async def editor(session: AsyncSession) -> User:
    role = await make_role(session, "editor", ("edit_users",))
    return await make_user(session, "editor@example.com", (role,), name="Editor")
