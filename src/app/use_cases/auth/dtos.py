"""
Authentication Use Case DTOs (Data Transfer Objects)

All Response classes for the auth core.
Provides type safety and clear contracts between layers.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from src.app.services.session_manager import DeviceInfo
from src.app.services.token_service import TokenPair


# ============================================================================
# Response DTOs
# ============================================================================


class LoginResponse(BaseModel):
    """
    Response for password login, 2FA completion and OAuth login.

    status is "authenticated" (tokens set) or "mfa_required" (challenge set).
    """

    status: str
    tokens: Optional[TokenPair] = None
    challenge_id: Optional[str] = None
    challenge_expires_at: Optional[datetime] = None
    # Forced by an administrator or the password is past its maximum age
    password_change_required: bool = False


class LogoutResponse(BaseModel):
    """Response for logout use case"""

    ok: bool = True


class SessionInfo(BaseModel):
    """One active session as shown to its owner"""

    session_id: str
    device: Optional[str]
    ip_address: Optional[str]
    created_at: datetime
    last_used_at: datetime
    is_current: bool


class SuspiciousSessionInfo(SessionInfo):
    """An active session flagged for review, with the rules it tripped"""

    reasons: List[str]


class SessionHistoryEntry(BaseModel):
    """One session of any state, for the account activity page"""

    session_id: str
    device: Optional[str]
    ip_address: Optional[str]
    created_at: datetime
    last_used_at: datetime
    expires_at: datetime
    revoked: bool
    revoked_at: Optional[datetime]
    revoked_reason: Optional[str]


class SessionStats(BaseModel):
    """Summary of a principal's sessions"""

    total_sessions: int
    active_sessions: int
    recently_active_sessions: int
    current_session_id: Optional[str]
    last_activity: Optional[datetime]


class RevokeSessionsResponse(BaseModel):
    """Response for session revocation operations"""

    revoked_count: int


class TwoFactorSetupResponse(BaseModel):
    """Secret and provisioning URI, shown once while enrollment is pending"""

    secret: str
    provisioning_uri: str


class BackupCodesResponse(BaseModel):
    """Plaintext backup codes - the only time they are ever returned"""

    backup_codes: List[str]


class TwoFactorStatusResponse(BaseModel):
    """Current two-factor state of a principal"""

    state: str
    enabled_at: Optional[datetime] = None
    remaining_backup_codes: int = 0


class PasswordStrengthResponse(BaseModel):
    """Advisory strength classification"""

    level: str
    score: int
    feedback: List[str]


class PasswordValidationResponse(BaseModel):
    """All violations at once so the client can render a checklist"""

    valid: bool
    violations: List[str]
    strength: Optional[PasswordStrengthResponse] = None


class PasswordChangeResponse(BaseModel):
    """Response for password change; other sessions are logged out"""

    ok: bool = True
    revoked_sessions: int = 0


class GeneratedPasswordResponse(BaseModel):
    """Response for generate password"""

    password: str


class OAuthStartResponse(BaseModel):
    """Authorization URL carrying the CSRF state"""

    authorization_url: str
    state: str
    provider: str


class OAuthProviderInfo(BaseModel):
    name: str
    scopes: List[str]


class OAuthProvidersResponse(BaseModel):
    """Providers a client can offer on its sign-in page"""

    providers: List[OAuthProviderInfo]


class OAuthCallbackResponse(BaseModel):
    """
    Response for an OAuth callback.

    status is "authenticated", "mfa_required" or "linked".
    """

    status: str
    tokens: Optional[TokenPair] = None
    challenge_id: Optional[str] = None
    challenge_expires_at: Optional[datetime] = None
    provider: str
    is_new_principal: bool = False
    # Routing hint passed to start_oauth; never a tenant assignment
    tenant_hint: Optional[str] = None


class PrincipalStatusResponse(BaseModel):
    """Response for admin activation/deactivation"""

    principal_id: str
    is_active: bool
    revoked_sessions: int = 0


class PasswordChangeRequiredResponse(BaseModel):
    """Response for an admin-forced password change"""

    principal_id: str
    password_change_required: bool = True


class SecurityEventInfo(BaseModel):
    """Single security event in response"""

    action: str
    success: bool
    timestamp: str
    metadata: Dict[str, Any]


class SecurityEventsResponse(BaseModel):
    """Newest first, cursor-paginated"""

    events: List[SecurityEventInfo]
    next_cursor: Optional[str]
