"""
Redis-backed fixed-window rate limiter.

INCR and the first PEXPIRE run in one Lua script, so concurrent instances
can never lose an increment or leave a counter without an expiry.
"""

import hashlib
import logging
from datetime import timedelta

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.app.errors import ServiceUnavailableError
from src.app.services.clock import Clock
from src.app.services.rate_limiter import RateLimitDecision, RateLimiter

logger = logging.getLogger(__name__)


class RedisRateLimiter(RateLimiter):
    _FIXED_WINDOW_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
  redis.call('PEXPIRE', KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

    def __init__(self, client: aioredis.Redis, clock: Clock):
        self.client = client
        self.clock = clock
        self._fixed_window = self.client.register_script(self._FIXED_WINDOW_SCRIPT)

    @classmethod
    def from_url(cls, redis_url: str, clock: Clock, timeout: float = 2.0) -> "RedisRateLimiter":
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, clock)

    @staticmethod
    def _normalize_key(key: str) -> str:
        # Hashing keeps caller-controlled parts (emails, IPs) out of the keyspace
        return f"rate:{hashlib.sha256(key.encode()).hexdigest()}"

    async def check_and_consume(
        self, key: str, limit: int, window_seconds: int
    ) -> RateLimitDecision:
        try:
            count, ttl_ms = await self._fixed_window(
                keys=[self._normalize_key(key)], args=[window_seconds * 1000]
            )
        except (RedisError, TimeoutError) as exc:
            logger.error(f"Rate limiter unavailable: {exc}")
            raise ServiceUnavailableError("Rate limiter unavailable") from exc

        count = int(count)
        return RateLimitDecision(
            allowed=count <= limit,
            remaining=max(0, limit - count),
            reset_at=self.clock.now() + timedelta(milliseconds=int(ttl_ms)),
        )

    async def close(self) -> None:
        await self.client.aclose()
