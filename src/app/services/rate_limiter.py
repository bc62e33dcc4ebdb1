"""
Rate Limiter Interface

Admission control shared by every instance of the service. Implementations
must use atomic increment-with-expiry in a shared store, never an
in-process counter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from src.app.errors import AuthErrorCode, auth_error
from src.libs.result import Result, Return


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: datetime

    def retry_after_seconds(self, now: datetime) -> int:
        return max(1, int((self.reset_at - now).total_seconds()))


class RateLimiter(ABC):
    @abstractmethod
    async def check_and_consume(
        self, key: str, limit: int, window_seconds: int
    ) -> RateLimitDecision:
        """Consume one unit for `key`; `allowed` is False once `limit` is exceeded."""
        pass


async def admit(
    limiter: RateLimiter, key: str, limit: int, window_seconds: int, now: datetime
) -> Result[RateLimitDecision]:
    """Consume one unit and map exhaustion to RATE_LIMITED with a retry hint"""
    decision = await limiter.check_and_consume(key, limit, window_seconds)
    if decision.allowed:
        return Return.ok(decision)
    return Return.err(
        auth_error(
            AuthErrorCode.RATE_LIMITED,
            "Too many attempts, try again later",
            {"retry_after": decision.retry_after_seconds(now)},
        )
    )
