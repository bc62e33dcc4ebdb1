"""
Database-backed fixed-window rate limiter.

Used when no Redis is deployed (CACHE_BACKEND=database). Counters live in
rate_limit_counters and are updated with conditional UPDATEs in their own
transaction, so they survive a rollback of the request's unit of work.
"""

from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlmodel import select, update
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.services.clock import Clock
from src.app.services.rate_limiter import RateLimitDecision, RateLimiter
from src.domain.entities import RateLimitCounter

MAX_INSERT_ATTEMPTS = 3


class SqlRateLimiter(RateLimiter):
    def __init__(self, session_factory, clock: Clock):
        self.session_factory = session_factory
        self.clock = clock

    async def check_and_consume(
        self, key: str, limit: int, window_seconds: int
    ) -> RateLimitDecision:
        for attempt in range(MAX_INSERT_ATTEMPTS):
            async with self.session_factory() as session:
                try:
                    counter = await self._consume(session, key, window_seconds)
                    await session.commit()
                    break
                except IntegrityError:
                    # Another instance inserted the same key first
                    await session.rollback()
                    if attempt == MAX_INSERT_ATTEMPTS - 1:
                        raise

        return RateLimitDecision(
            allowed=counter.count <= limit,
            remaining=max(0, limit - counter.count),
            reset_at=counter.reset_at,
        )

    async def _consume(
        self, session: AsyncSession, key: str, window_seconds: int
    ) -> RateLimitCounter:
        now = self.clock.now()

        # Inside the current window: increment
        result = await session.execute(
            update(RateLimitCounter)
            .where(RateLimitCounter.key == key, RateLimitCounter.reset_at > now)
            .values(count=RateLimitCounter.count + 1)
        )
        if result.rowcount == 0:
            # Window elapsed: restart it
            result = await session.execute(
                update(RateLimitCounter)
                .where(RateLimitCounter.key == key, RateLimitCounter.reset_at <= now)
                .values(count=1, reset_at=now + timedelta(seconds=window_seconds))
            )
        if result.rowcount == 0:
            session.add(
                RateLimitCounter(
                    key=key, count=1, reset_at=now + timedelta(seconds=window_seconds)
                )
            )
            await session.flush()

        row = await session.execute(
            select(RateLimitCounter.count, RateLimitCounter.reset_at).where(
                RateLimitCounter.key == key
            )
        )
        count, reset_at = row.one()
        return RateLimitCounter(key=key, count=count, reset_at=reset_at)
