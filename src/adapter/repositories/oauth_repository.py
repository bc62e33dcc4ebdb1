from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlmodel import select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.oauth_repository import IOAuthRepository
from src.domain.entities import OAuthLink, OAuthState


class OAuthRepository(IOAuthRepository):
    """OAuth link/state repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_link(self, provider: str, provider_user_id: str) -> Optional[OAuthLink]:
        stmt = select(OAuthLink).where(
            OAuthLink.provider == provider,
            OAuthLink.provider_user_id == provider_user_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_link(self, link: OAuthLink) -> OAuthLink:
        self.session.add(link)
        await self.session.flush()
        await self.session.refresh(link)
        return link

    async def list_links_by_principal_id(self, principal_id: UUID) -> List[OAuthLink]:
        stmt = select(OAuthLink).where(OAuthLink.principal_id == principal_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_state(self, state: OAuthState) -> OAuthState:
        self.session.add(state)
        await self.session.flush()
        await self.session.refresh(state)
        return state

    async def consume_state(
        self, state: str, provider: str, now: datetime
    ) -> Optional[OAuthState]:
        stmt = (
            update(OAuthState)
            .where(
                OAuthState.state == state,
                OAuthState.provider == provider,
                OAuthState.consumed_at == None,
                OAuthState.expires_at > now,
            )
            .values(consumed_at=now)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        if result.rowcount != 1:
            return None

        lookup = await self.session.execute(
            select(OAuthState).where(OAuthState.state == state)
        )
        return lookup.scalar_one_or_none()
