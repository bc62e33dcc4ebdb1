from abc import ABC, abstractmethod
from typing import List
from uuid import UUID

from src.domain.entities import PasswordHistory


class IPasswordHistoryRepository(ABC):
    """Password history repository interface - application layer"""

    @abstractmethod
    async def list_recent(self, principal_id: UUID, limit: int) -> List[PasswordHistory]:
        """Most recent entries first"""
        pass

    @abstractmethod
    async def append(self, entry: PasswordHistory, keep: int) -> None:
        """Add an entry and evict everything beyond the newest `keep` entries"""
        pass
