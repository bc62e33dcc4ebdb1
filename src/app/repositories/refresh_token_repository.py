from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from src.domain.entities import RefreshToken


class IRefreshTokenRepository(ABC):
    """Refresh token repository interface - application layer"""

    @abstractmethod
    async def get_by_id(self, token_id: UUID) -> Optional[RefreshToken]:
        """Get refresh token record by jti"""
        pass

    @abstractmethod
    async def create(self, token: RefreshToken) -> RefreshToken:
        """Persist a newly issued refresh token"""
        pass

    @abstractmethod
    async def rotate(self, token_id: UUID, replacement_id: UUID, now: datetime) -> bool:
        """
        Atomically mark a token as rotated.

        Conditional update on revoked=False: of two concurrent rotations of
        the same token exactly one returns True.
        """
        pass

    @abstractmethod
    async def revoke(self, token_id: UUID, now: datetime) -> bool:
        """Revoke a token. Returns False if it was already revoked or missing."""
        pass

    @abstractmethod
    async def revoke_by_session_ids(self, session_ids: List[UUID], now: datetime) -> int:
        """Revoke every live token of the given sessions. Returns count."""
        pass
