from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from src.domain.entities import TwoFactorEnrollment


class ITwoFactorRepository(ABC):
    """Two-factor enrollment and backup code repository interface - application layer"""

    @abstractmethod
    async def get_enrollment(self, principal_id: UUID) -> Optional[TwoFactorEnrollment]:
        """Get the pending or enrolled record of a principal"""
        pass

    @abstractmethod
    async def save_enrollment(self, enrollment: TwoFactorEnrollment) -> TwoFactorEnrollment:
        """Insert or replace the enrollment record"""
        pass

    @abstractmethod
    async def delete_enrollment(self, principal_id: UUID) -> None:
        """Remove enrollment and all backup codes (back to unenrolled)"""
        pass

    @abstractmethod
    async def advance_last_used_step(self, principal_id: UUID, step: int) -> bool:
        """
        Record the TOTP time step just accepted.

        Conditional on the stored step being lower, so a code is accepted once.
        """
        pass

    @abstractmethod
    async def replace_backup_codes(self, principal_id: UUID, code_hashes: List[str]) -> None:
        """Drop existing backup codes and store the new hashed set"""
        pass

    @abstractmethod
    async def consume_backup_code(
        self, principal_id: UUID, code_hash: str, now: datetime
    ) -> bool:
        """Mark an unused backup code as used. Exactly one concurrent caller wins."""
        pass

    @abstractmethod
    async def count_unused_backup_codes(self, principal_id: UUID) -> int:
        """Number of backup codes still available"""
        pass
