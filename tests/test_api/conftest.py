import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import create_admin, create_driver, create_test_user

from comms.models import User


@pytest.fixture
async def admin_user(db_test_session_manager: async_sessionmaker[AsyncSession]) -> User:
    return await create_admin(db_test_session_manager, phone="+15550000001")


@pytest.fixture
async def customer_user(
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> User:
    return await create_test_user(
        db_test_session_manager,
        first_name="Casey",
        last_name="Customer",
        phone="+15550000002",
    )


@pytest.fixture
async def driver_user(
    db_test_session_manager: async_sessionmaker[AsyncSession],
) -> User:
    return await create_driver(
        db_test_session_manager,
        first_name="Dana",
        last_name="Account",
        driver_phone="+15550000003",
    )
