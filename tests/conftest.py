import os

# Settings are read at import time; these must be in place before any
# comms module is imported.
os.environ.setdefault("SECRET", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./unused-test.db")
os.environ["RUN_MIGRATIONS"] = "false"
os.environ["BACKGROUND_JOBS_ENABLED"] = "false"

from typing import Any, AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from fastapi import Depends, FastAPI  # noqa: E402
from fastapi_users.db import SQLAlchemyUserDatabase  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from test_helpers import FakeEmailSender, FakeSmsSender  # noqa: E402

from comms.db import get_db_session, get_user_db  # noqa: E402
from comms.main import app  # noqa: E402
from comms.models import User, metadata  # noqa: E402
from comms.services.dependencies import install_components  # noqa: E402


# Master fixture to manage table creation and provide the session maker.
# A file database lets the request session and the detached dispatcher
# sessions see each other's commits.
@pytest.fixture(scope="function")
async def db_test_session_manager(
    tmp_path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


# Fixture for the FastAPI app with overridden dependencies
@pytest.fixture(scope="function")
async def test_app(
    db_test_session_manager: async_sessionmaker[AsyncSession],
    email_sender: FakeEmailSender,
    sms_sender: FakeSmsSender,
) -> AsyncGenerator[FastAPI, None]:
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with db_test_session_manager() as session:
            yield session

    async def override_get_user_db(
        session: AsyncSession = Depends(get_db_session),
    ) -> SQLAlchemyUserDatabase[User, Any]:
        yield SQLAlchemyUserDatabase(session, User)

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_user_db] = override_get_user_db
    install_components(
        app,
        db_test_session_manager,
        email_sender=email_sender,
        sms_sender=sms_sender,
    )

    yield app

    await app.state.tasks.drain()
    app.dependency_overrides.clear()


# Fixture for the async test client
@pytest.fixture(scope="function")
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as client:
        yield client
