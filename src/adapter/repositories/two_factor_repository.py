from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, or_
from sqlmodel import select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.two_factor_repository import ITwoFactorRepository
from src.domain.entities import BackupCode, TwoFactorEnrollment


class TwoFactorRepository(ITwoFactorRepository):
    """Two-factor repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_enrollment(self, principal_id: UUID) -> Optional[TwoFactorEnrollment]:
        stmt = select(TwoFactorEnrollment).where(
            TwoFactorEnrollment.principal_id == principal_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save_enrollment(self, enrollment: TwoFactorEnrollment) -> TwoFactorEnrollment:
        merged = await self.session.merge(enrollment)
        await self.session.flush()
        return merged

    async def delete_enrollment(self, principal_id: UUID) -> None:
        await self.session.execute(
            delete(BackupCode).where(BackupCode.principal_id == principal_id)
        )
        await self.session.execute(
            delete(TwoFactorEnrollment).where(
                TwoFactorEnrollment.principal_id == principal_id
            )
        )
        await self.session.flush()

    async def advance_last_used_step(self, principal_id: UUID, step: int) -> bool:
        stmt = (
            update(TwoFactorEnrollment)
            .where(
                TwoFactorEnrollment.principal_id == principal_id,
                or_(
                    TwoFactorEnrollment.last_used_step == None,
                    TwoFactorEnrollment.last_used_step < step,
                ),
            )
            .values(last_used_step=step)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def replace_backup_codes(self, principal_id: UUID, code_hashes: List[str]) -> None:
        await self.session.execute(
            delete(BackupCode).where(BackupCode.principal_id == principal_id)
        )
        for code_hash in code_hashes:
            self.session.add(BackupCode(principal_id=principal_id, code_hash=code_hash))
        await self.session.flush()

    async def consume_backup_code(
        self, principal_id: UUID, code_hash: str, now: datetime
    ) -> bool:
        stmt = (
            update(BackupCode)
            .where(
                BackupCode.principal_id == principal_id,
                BackupCode.code_hash == code_hash,
                BackupCode.used_at == None,
            )
            .values(used_at=now)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount == 1

    async def count_unused_backup_codes(self, principal_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(BackupCode)
            .where(BackupCode.principal_id == principal_id, BackupCode.used_at == None)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()
