from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlmodel import select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.session_repository import ISessionRepository
from src.domain.entities import Session


class SessionRepository(ISessionRepository):
    """Session repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, session_id: UUID) -> Optional[Session]:
        """Get session by ID"""
        stmt = select(Session).where(Session.id == session_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, session_obj: Session) -> Session:
        """Create a new session"""
        self.session.add(session_obj)
        await self.session.flush()
        await self.session.refresh(session_obj)
        return session_obj

    async def list_active_by_principal_id(
        self, principal_id: UUID, now: datetime
    ) -> List[Session]:
        stmt = (
            select(Session)
            .where(
                Session.principal_id == principal_id,
                Session.revoked == False,
                Session.expires_at > now,
            )
            .order_by(Session.last_used_at.desc(), Session.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_principal_id(self, principal_id: UUID) -> int:
        stmt = select(func.count()).select_from(Session).where(
            Session.principal_id == principal_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def list_by_principal_id(self, principal_id: UUID, limit: int) -> List[Session]:
        stmt = (
            select(Session)
            .where(Session.principal_id == principal_id)
            .order_by(Session.created_at.desc(), Session.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def bind_refresh_token(
        self,
        session_id: UUID,
        refresh_token_id: UUID,
        now: datetime,
        expires_at: datetime,
    ) -> bool:
        """
        Conditional update on revoked=False.

        A concurrent revoke that commits first makes this return False, so a
        refresh can never resurrect a revoked session.
        """
        stmt = (
            update(Session)
            .where(Session.id == session_id, Session.revoked == False)
            .values(
                refresh_token_id=refresh_token_id,
                last_used_at=now,
                expires_at=expires_at,
            )
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def touch(self, session_id: UUID, now: datetime) -> bool:
        stmt = (
            update(Session)
            .where(Session.id == session_id, Session.revoked == False)
            .values(last_used_at=now)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def revoke_by_id(self, session_id: UUID, reason: str, now: datetime) -> bool:
        """Revoke a specific session by ID"""
        stmt = (
            update(Session)
            .where(Session.id == session_id, Session.revoked == False)
            .values(revoked=True, revoked_at=now, revoked_reason=reason)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def revoke_all_by_principal_id(
        self,
        principal_id: UUID,
        reason: str,
        now: datetime,
        except_session_id: Optional[UUID] = None,
    ) -> List[UUID]:
        """Revoke all active sessions for a principal, optionally keeping one"""
        conditions = [Session.principal_id == principal_id, Session.revoked == False]
        if except_session_id is not None:
            conditions.append(Session.id != except_session_id)

        ids_result = await self.session.execute(select(Session.id).where(*conditions))
        session_ids = list(ids_result.scalars().all())
        if not session_ids:
            return []

        stmt = (
            update(Session)
            .where(Session.id.in_(session_ids), Session.revoked == False)
            .values(revoked=True, revoked_at=now, revoked_reason=reason)
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return session_ids
