from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from src.domain.entities import LoginChallenge


class ILoginChallengeRepository(ABC):
    """Login challenge repository interface - application layer"""

    @abstractmethod
    async def create(self, challenge: LoginChallenge) -> LoginChallenge:
        """Persist a new challenge"""
        pass

    @abstractmethod
    async def get_by_id(self, challenge_id: UUID) -> Optional[LoginChallenge]:
        """Get challenge by ID"""
        pass

    @abstractmethod
    async def consume(self, challenge_id: UUID, now: datetime) -> bool:
        """Mark an unexpired, unconsumed challenge as consumed. Single winner."""
        pass
