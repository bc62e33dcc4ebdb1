from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from src.domain.entities import OAuthLink, OAuthState


class IOAuthRepository(ABC):
    """OAuth link and state repository interface - application layer"""

    @abstractmethod
    async def get_link(self, provider: str, provider_user_id: str) -> Optional[OAuthLink]:
        """Find the link for a provider identity"""
        pass

    @abstractmethod
    async def create_link(self, link: OAuthLink) -> OAuthLink:
        """Create a new provider link"""
        pass

    @abstractmethod
    async def list_links_by_principal_id(self, principal_id: UUID) -> List[OAuthLink]:
        """All provider links of a principal"""
        pass

    @abstractmethod
    async def create_state(self, state: OAuthState) -> OAuthState:
        """Persist an issued authorization state"""
        pass

    @abstractmethod
    async def consume_state(
        self, state: str, provider: str, now: datetime
    ) -> Optional[OAuthState]:
        """
        Consume a state issued for this provider.

        Returns None when the state is unknown, expired, already consumed or
        was issued for another provider.
        """
        pass
