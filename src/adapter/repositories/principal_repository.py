from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlmodel import select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.principal_repository import IPrincipalRepository
from src.domain.entities import Principal


class PrincipalRepository(IPrincipalRepository):
    """Principal repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_email(self, email: str) -> Optional[Principal]:
        """Get principal by email address (case-insensitive)"""
        stmt = select(Principal).where(func.lower(Principal.email) == email.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, principal_id: UUID) -> Optional[Principal]:
        """Get principal by ID"""
        stmt = select(Principal).where(Principal.id == principal_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, principal: Principal) -> Principal:
        """Create a new principal"""
        principal.email = principal.email.strip().lower()
        self.session.add(principal)
        await self.session.flush()
        await self.session.refresh(principal)
        return principal

    async def update_password_hash(
        self, principal_id: UUID, password_hash: str, changed_at: datetime
    ) -> None:
        stmt = (
            update(Principal)
            .where(Principal.id == principal_id)
            .values(
                password_hash=password_hash,
                password_changed_at=changed_at,
                password_change_required=False,
            )
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def set_active(self, principal_id: UUID, is_active: bool) -> bool:
        stmt = (
            update(Principal)
            .where(Principal.id == principal_id)
            .values(is_active=is_active)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def require_password_change(self, principal_id: UUID) -> bool:
        stmt = (
            update(Principal)
            .where(Principal.id == principal_id)
            .values(password_change_required=True)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def set_two_factor_state(self, principal_id: UUID, enabled: bool) -> None:
        stmt = (
            update(Principal)
            .where(Principal.id == principal_id)
            .values(two_factor_enabled=enabled)
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def touch_last_login(self, principal_id: UUID, at: datetime) -> None:
        stmt = update(Principal).where(Principal.id == principal_id).values(last_login_at=at)
        await self.session.execute(stmt)
        await self.session.flush()
