from typing import List
from uuid import UUID

from sqlalchemy import delete
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.password_history_repository import IPasswordHistoryRepository
from src.domain.entities import PasswordHistory


class PasswordHistoryRepository(IPasswordHistoryRepository):
    """Password history repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_recent(self, principal_id: UUID, limit: int) -> List[PasswordHistory]:
        stmt = (
            select(PasswordHistory)
            .where(PasswordHistory.principal_id == principal_id)
            .order_by(PasswordHistory.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def append(self, entry: PasswordHistory, keep: int) -> None:
        self.session.add(entry)
        await self.session.flush()

        kept = await self.list_recent(entry.principal_id, keep)
        kept_ids = [h.id for h in kept]
        stmt = delete(PasswordHistory).where(
            PasswordHistory.principal_id == entry.principal_id,
            PasswordHistory.id.not_in(kept_ids),
        )
        await self.session.execute(stmt)
        await self.session.flush()
