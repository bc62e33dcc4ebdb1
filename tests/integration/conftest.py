import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from src.adapter.services.security_event_sinks import (
    AuditTrailSecurityEventSink,
    CompositeSecurityEventSink,
    LoggingSecurityEventSink,
)
from src.adapter.services.sql_rate_limiter import SqlRateLimiter
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.api.app import create_app
from src.app.services.auth_context import AuthContext
from src.app.services.clock import SystemClock
from src.app.services.password_policy import PasswordPolicyEngine
from src.app.services.passwords import hash_password
from src.app.services.security_events import SecurityEventRecorder
from src.app.services.token_service import TokenSigner
from src.depends import get_session, get_unit_of_work
from src.domain.entities import Principal
from tests.fixtures.fakes import TEST_BCRYPT_ROUNDS, StubProviderClient, make_settings


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///./test.db")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def provider_client():
    return StubProviderClient()


@pytest_asyncio.fixture
async def auth_context(session_factory, provider_client):
    clock = SystemClock()
    settings = make_settings()
    sink = CompositeSecurityEventSink(
        [LoggingSecurityEventSink(), AuditTrailSecurityEventSink(session_factory, clock)]
    )
    return AuthContext(
        settings=settings,
        clock=clock,
        signer=TokenSigner(settings, clock),
        rate_limiter=SqlRateLimiter(session_factory, clock),
        events=SecurityEventRecorder(sink),
        password_policy=PasswordPolicyEngine(),
        provider_client=provider_client,
    )


@pytest_asyncio.fixture
async def client(session_factory, auth_context):
    app = create_app(ApplicationConfig, auth_context=auth_context)

    async def override_get_unit_of_work():
        async with session_factory() as session:
            yield SqlAlchemyUnitOfWork(session)

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_unit_of_work] = override_get_unit_of_work
    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def create_principal(session_factory):
    """There is no signup endpoint: principals are provisioned straight into the store"""

    async def _create(
        email="user@acme.com", password="Str0ng!Passw0rd", **kwargs
    ) -> Principal:
        if password:
            kwargs.setdefault("password_changed_at", SystemClock().now())
        principal = Principal(
            email=email,
            password_hash=hash_password(password, TEST_BCRYPT_ROUNDS) if password else None,
            **kwargs,
        )
        async with session_factory() as session:
            session.add(principal)
            await session.commit()
        return principal

    return _create


@pytest_asyncio.fixture
async def login(client):
    """Log in and return the token pair"""

    async def _login(email="user@acme.com", password="Str0ng!Passw0rd", user_agent="pytest"):
        response = await client.post(
            "/auth/login",
            json={"email": email, "password": password},
            headers={"User-Agent": user_agent},
        )
        assert response.status_code == 200, response.text
        return response.json()["tokens"]

    return _login
