from abc import ABC, abstractmethod

from src.app.repositories.audit_event_repository import IAuditEventRepository
from src.app.repositories.login_challenge_repository import ILoginChallengeRepository
from src.app.repositories.oauth_repository import IOAuthRepository
from src.app.repositories.password_history_repository import IPasswordHistoryRepository
from src.app.repositories.principal_repository import IPrincipalRepository
from src.app.repositories.refresh_token_repository import IRefreshTokenRepository
from src.app.repositories.session_repository import ISessionRepository
from src.app.repositories.two_factor_repository import ITwoFactorRepository


class UnitOfWork(ABC):
    """Abstract UnitOfWork - defines repository access and transaction management"""

    # Repository properties (initialized in __aenter__)
    principals: IPrincipalRepository
    sessions: ISessionRepository
    refresh_tokens: IRefreshTokenRepository
    two_factor: ITwoFactorRepository
    login_challenges: ILoginChallengeRepository
    oauth: IOAuthRepository
    password_history: IPasswordHistoryRepository
    audit_events: IAuditEventRepository

    @abstractmethod
    async def __aenter__(self):
        pass

    @abstractmethod
    async def __aexit__(self, *args):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass
