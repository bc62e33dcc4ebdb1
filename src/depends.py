from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from config import ApplicationConfig
from src.adapter.services.httpx_oauth_client import HttpxOAuthProviderClient
from src.adapter.services.redis_rate_limiter import RedisRateLimiter
from src.adapter.services.security_event_sinks import (
    AuditTrailSecurityEventSink,
    CompositeSecurityEventSink,
    LoggingSecurityEventSink,
)
from src.adapter.services.sql_rate_limiter import SqlRateLimiter
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.api.error import ClientError, raise_for_error
from src.app.errors import AuthErrorCode, ConfigurationError, auth_error
from src.app.services.auth_context import AuthContext
from src.app.services.clock import SystemClock
from src.app.services.password_policy import PasswordPolicy, PasswordPolicyEngine
from src.app.services.security_events import SecurityEventRecorder
from src.app.services.session_manager import DeviceInfo
from src.app.services.settings import AuthSettings
from src.app.services.token_service import AccessClaims, TokenSigner
from src.app.use_cases.auth import AuthenticationOrchestrator

engine = create_async_engine(
    ApplicationConfig.DB_URI,
    echo=False,
    future=True,
    pool_pre_ping=True,
    connect_args={"timeout": ApplicationConfig.DB_TIMEOUT_SECONDS},
)

AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

security = HTTPBearer(auto_error=False)


def build_auth_context(config, session_factory=None) -> AuthContext:
    """
    Wire the application-scoped collaborators from configuration.

    Raises:
        ConfigurationError: unusable signing key, algorithm or backend
    """
    session_factory = session_factory or AsyncSessionLocal
    settings = AuthSettings.from_config(config)
    clock = SystemClock()

    if config.CACHE_BACKEND == "redis":
        rate_limiter = RedisRateLimiter.from_url(
            config.REDIS_URL, clock, timeout=config.REDIS_TIMEOUT_SECONDS
        )
    elif config.CACHE_BACKEND == "database":
        rate_limiter = SqlRateLimiter(session_factory, clock)
    else:
        raise ConfigurationError(f"Unknown CACHE_BACKEND: {config.CACHE_BACKEND}")

    sink = CompositeSecurityEventSink(
        [LoggingSecurityEventSink(), AuditTrailSecurityEventSink(session_factory, clock)]
    )

    provider_client = None
    if any(p.enabled for p in settings.oauth_providers.values()):
        provider_client = HttpxOAuthProviderClient(
            settings.oauth_providers,
            settings.oauth_redirect_uri,
            timeout=config.OAUTH_HTTP_TIMEOUT_SECONDS,
        )

    return AuthContext(
        settings=settings,
        clock=clock,
        signer=TokenSigner(settings, clock),
        rate_limiter=rate_limiter,
        events=SecurityEventRecorder(sink),
        password_policy=PasswordPolicyEngine(
            PasswordPolicy(max_age_days=config.PASSWORD_MAX_AGE_DAYS or None)
        ),
        provider_client=provider_client,
    )


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_auth_context(context: AuthContext) -> None:
    for resource in (context.rate_limiter, context.provider_client):
        close = getattr(resource, "close", None)
        if close is not None:
            await close()


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


async def get_unit_of_work():
    async with AsyncSessionLocal() as session:
        yield SqlAlchemyUnitOfWork(session)


def get_auth_context(request: Request) -> AuthContext:
    return request.app.state.auth_context


def get_orchestrator(
    uow=Depends(get_unit_of_work),
    context: AuthContext = Depends(get_auth_context),
) -> AuthenticationOrchestrator:
    return AuthenticationOrchestrator(uow, context)


def get_device_info(request: Request) -> DeviceInfo:
    return DeviceInfo(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


@dataclass(frozen=True)
class CurrentPrincipal:
    principal_id: UUID
    session_id: UUID
    tenant_id: Optional[UUID]
    is_admin: bool
    claims: AccessClaims


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    context: AuthContext = Depends(get_auth_context),
) -> CurrentPrincipal:
    """
    Dependency to extract and verify the access token from the Authorization header.

    Raises:
        ClientError: 401 if the token is missing, malformed, forged or expired
    """
    if credentials is None:
        raise ClientError(
            auth_error(AuthErrorCode.MALFORMED_TOKEN, "Bearer token required"),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    result = context.signer.verify_access_token(credentials.credentials)
    if result.is_err():
        raise_for_error(result.error)

    claims = result.value
    return CurrentPrincipal(
        principal_id=claims.principal_id,
        session_id=claims.session_id,
        tenant_id=claims.tenant_id,
        is_admin=claims.is_admin,
        claims=claims,
    )
