from sqlmodel.ext.asyncio.session import AsyncSession

from src.adapter.repositories.audit_event_repository import AuditEventRepository
from src.adapter.repositories.login_challenge_repository import LoginChallengeRepository
from src.adapter.repositories.oauth_repository import OAuthRepository
from src.adapter.repositories.password_history_repository import PasswordHistoryRepository
from src.adapter.repositories.principal_repository import PrincipalRepository
from src.adapter.repositories.refresh_token_repository import RefreshTokenRepository
from src.adapter.repositories.session_repository import SessionRepository
from src.adapter.repositories.two_factor_repository import TwoFactorRepository
from src.app.services.unit_of_work import UnitOfWork


class SqlAlchemyUnitOfWork(UnitOfWork):
    """SQLAlchemy implementation of UnitOfWork pattern"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def __aenter__(self):
        # Initialize all repositories with the session
        self.principals = PrincipalRepository(self.session)
        self.sessions = SessionRepository(self.session)
        self.refresh_tokens = RefreshTokenRepository(self.session)
        self.two_factor = TwoFactorRepository(self.session)
        self.login_challenges = LoginChallengeRepository(self.session)
        self.oauth = OAuthRepository(self.session)
        self.password_history = PasswordHistoryRepository(self.session)
        self.audit_events = AuditEventRepository(self.session)
        return self

    async def __aexit__(self, *args):
        # Anything not committed by the use case is discarded
        await self.rollback()

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()
