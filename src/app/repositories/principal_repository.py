from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from src.domain.entities import Principal


class IPrincipalRepository(ABC):
    """Principal repository interface (the identity store) - application layer"""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Principal]:
        """Get principal by email address (case-insensitive)"""
        pass

    @abstractmethod
    async def get_by_id(self, principal_id: UUID) -> Optional[Principal]:
        """Get principal by ID"""
        pass

    @abstractmethod
    async def create(self, principal: Principal) -> Principal:
        """Create a new principal"""
        pass

    @abstractmethod
    async def update_password_hash(
        self, principal_id: UUID, password_hash: str, changed_at: datetime
    ) -> None:
        """Replace the stored password hash and clear password_change_required"""
        pass

    @abstractmethod
    async def set_active(self, principal_id: UUID, is_active: bool) -> bool:
        """Activate/deactivate a principal. Returns False if it does not exist."""
        pass

    @abstractmethod
    async def require_password_change(self, principal_id: UUID) -> bool:
        """Flag the principal for a forced change. Returns False if it does not exist."""
        pass

    @abstractmethod
    async def set_two_factor_state(self, principal_id: UUID, enabled: bool) -> None:
        """Set the two_factor_enabled flag"""
        pass

    @abstractmethod
    async def touch_last_login(self, principal_id: UUID, at: datetime) -> None:
        """Record a successful login"""
        pass
