"""
Auth Context

Application-scoped collaborators of the auth core, built once at startup and
shared by every request. Nothing in here holds per-request state.
"""

from dataclasses import dataclass
from typing import Optional

from src.app.services.clock import Clock
from src.app.services.oauth_provider_client import OAuthProviderClient
from src.app.services.password_policy import PasswordPolicyEngine
from src.app.services.rate_limiter import RateLimiter
from src.app.services.security_events import SecurityEventRecorder
from src.app.services.settings import AuthSettings
from src.app.services.token_service import TokenSigner


@dataclass
class AuthContext:
    settings: AuthSettings
    clock: Clock
    signer: TokenSigner
    rate_limiter: RateLimiter
    events: SecurityEventRecorder
    password_policy: PasswordPolicyEngine
    # None until an OAuth provider client is wired in
    provider_client: Optional[OAuthProviderClient] = None
