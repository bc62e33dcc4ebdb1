from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from src.domain.entities import Session


class ISessionRepository(ABC):
    """Session repository interface - application layer"""

    @abstractmethod
    async def get_by_id(self, session_id: UUID) -> Optional[Session]:
        """Get session by ID"""
        pass

    @abstractmethod
    async def create(self, session: Session) -> Session:
        """Create a new session"""
        pass

    @abstractmethod
    async def list_active_by_principal_id(
        self, principal_id: UUID, now: datetime
    ) -> List[Session]:
        """Non-revoked, non-expired sessions ordered by last_used_at desc"""
        pass

    @abstractmethod
    async def count_by_principal_id(self, principal_id: UUID) -> int:
        """Count all sessions ever created for a principal"""
        pass

    @abstractmethod
    async def list_by_principal_id(self, principal_id: UUID, limit: int) -> List[Session]:
        """All sessions of a principal, revoked ones included, newest first"""
        pass

    @abstractmethod
    async def bind_refresh_token(
        self,
        session_id: UUID,
        refresh_token_id: UUID,
        now: datetime,
        expires_at: datetime,
    ) -> bool:
        """
        Point the session at its new refresh token, touch last_used_at and
        slide expires_at to the new token's expiry.

        Conditional on the session not being revoked. Returns False if the
        session was revoked (or does not exist) at update time.
        """
        pass

    @abstractmethod
    async def touch(self, session_id: UUID, now: datetime) -> bool:
        """Update last_used_at of a live session. Returns False if revoked."""
        pass

    @abstractmethod
    async def revoke_by_id(self, session_id: UUID, reason: str, now: datetime) -> bool:
        """Revoke a specific session. Returns True if session existed and was revoked."""
        pass

    @abstractmethod
    async def revoke_all_by_principal_id(
        self,
        principal_id: UUID,
        reason: str,
        now: datetime,
        except_session_id: Optional[UUID] = None,
    ) -> List[UUID]:
        """Revoke all active sessions of a principal. Returns the revoked session IDs."""
        pass
