import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.auth_context import AuthContext
from src.app.services.passwords import hash_password
from src.app.services.password_policy import PasswordPolicyEngine
from src.app.services.security_events import SecurityEventRecorder
from src.app.services.token_service import TokenSigner
from src.domain.entities import Principal
from tests.fixtures.fakes import (
    TEST_BCRYPT_ROUNDS,
    FrozenClock,
    InMemoryRateLimiter,
    RecordingSink,
    StubProviderClient,
    make_settings,
)


@pytest.fixture
def mock_uow():
    uow = MagicMock()
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=False)  # Must return False to not suppress exceptions
    uow.commit = AsyncMock()
    uow.rollback = AsyncMock()
    return uow


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def rate_limiter(clock):
    return InMemoryRateLimiter(clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def provider_client():
    return StubProviderClient()


@pytest.fixture
def auth_context(settings, clock, rate_limiter, sink, provider_client):
    return AuthContext(
        settings=settings,
        clock=clock,
        signer=TokenSigner(settings, clock),
        rate_limiter=rate_limiter,
        events=SecurityEventRecorder(sink),
        password_policy=PasswordPolicyEngine(),
        provider_client=provider_client,
    )


@pytest_asyncio.fixture
async def engine():
    # One shared in-memory connection for the whole test
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def uow(session_factory):
    async with session_factory() as session:
        yield SqlAlchemyUnitOfWork(session)


@pytest_asyncio.fixture
async def create_principal(session_factory, clock):
    """Persist a principal in its own session and return the detached row"""

    async def _create(
        email="user@acme.com",
        password="Str0ng!Passw0rd",
        is_active=True,
        two_factor_enabled=False,
        **kwargs,
    ) -> Principal:
        if password:
            kwargs.setdefault("password_changed_at", clock.now())
        principal = Principal(
            email=email,
            password_hash=hash_password(password, TEST_BCRYPT_ROUNDS) if password else None,
            is_active=is_active,
            two_factor_enabled=two_factor_enabled,
            created_at=clock.now(),
            **kwargs,
        )
        async with session_factory() as session:
            session.add(principal)
            await session.commit()
        return principal

    return _create
