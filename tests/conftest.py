"""pytest configuration and fixtures.

Every test gets its own SQLite in-memory database with all tables created,
and services wired to a cheap bcrypt cost factor so the suite stays fast.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from bookswap.core.security import CredentialStore
from bookswap.db.session import create_all, create_engine, create_session_factory
from bookswap.models import Base, User
from bookswap.schemas.user import UserCreate
from bookswap.services.trade_service import TradeService
from bookswap.services.user_service import UserService

# Lowest cost bcrypt accepts; production default is 10
TEST_ROUNDS = 4

VALID_PASSWORD = "Abc123!@"


@pytest_asyncio.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """SQLite in-memory engine with every table created."""
    engine = create_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await create_all(engine)

    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Session from the same factory the services expect."""
    factory = create_session_factory(async_engine)
    async with factory() as session:
        yield session


@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore(rounds=TEST_ROUNDS)


@pytest.fixture
def user_service(db_session: AsyncSession, credentials: CredentialStore) -> UserService:
    return UserService(db_session, credentials)


@pytest.fixture
def trade_service(db_session: AsyncSession, user_service: UserService) -> TradeService:
    return TradeService(db_session, user_service)


@pytest_asyncio.fixture
async def alice(user_service: UserService) -> User:
    return await user_service.create_user(
        UserCreate(
            username="alice",
            password=VALID_PASSWORD,
            creator_id="local",
            first_name="Alice",
            city="Portland",
        )
    )


@pytest_asyncio.fixture
async def bob(user_service: UserService) -> User:
    return await user_service.create_user(
        UserCreate(username="bob", password="Bob456#x", creator_id="local")
    )
