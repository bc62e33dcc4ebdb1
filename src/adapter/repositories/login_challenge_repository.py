from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlmodel import select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.login_challenge_repository import ILoginChallengeRepository
from src.domain.entities import LoginChallenge


class LoginChallengeRepository(ILoginChallengeRepository):
    """Login challenge repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, challenge: LoginChallenge) -> LoginChallenge:
        self.session.add(challenge)
        await self.session.flush()
        await self.session.refresh(challenge)
        return challenge

    async def get_by_id(self, challenge_id: UUID) -> Optional[LoginChallenge]:
        stmt = select(LoginChallenge).where(LoginChallenge.id == challenge_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def consume(self, challenge_id: UUID, now: datetime) -> bool:
        stmt = (
            update(LoginChallenge)
            .where(
                LoginChallenge.id == challenge_id,
                LoginChallenge.consumed_at == None,
                LoginChallenge.expires_at > now,
            )
            .values(consumed_at=now)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount == 1
