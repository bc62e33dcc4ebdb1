from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ProviderIdentity:
    provider: str
    provider_user_id: str
    email: Optional[str]
    email_verified: bool
    name: Optional[str] = None


class OAuthProviderClient(ABC):
    """Exchanges an authorization code for the provider's view of the user"""

    @abstractmethod
    async def exchange_code(self, provider: str, code: str) -> ProviderIdentity:
        """
        Raises:
            ProviderUnavailableError: timeout, network failure or provider error
        """
        pass
