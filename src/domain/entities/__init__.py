"""
Auth Core Domain Entities

All domain entities organized by model.
Each entity in its own file for better maintainability.
"""

# Export all enums
from .enums import (
    TwoFactorStatus,
    SessionPolicy,
    RevocationReason,
)

# Export all entities
from .principal import Principal
from .session import Session
from .refresh_token import RefreshToken
from .two_factor import TwoFactorEnrollment, BackupCode
from .login_challenge import LoginChallenge
from .oauth import OAuthLink, OAuthState
from .password_history import PasswordHistory
from .rate_limit_counter import RateLimitCounter
from .audit_event import AuditEvent

__all__ = [
    # Enums
    "TwoFactorStatus",
    "SessionPolicy",
    "RevocationReason",
    # Entities
    "Principal",
    "Session",
    "RefreshToken",
    "TwoFactorEnrollment",
    "BackupCode",
    "LoginChallenge",
    "OAuthLink",
    "OAuthState",
    "PasswordHistory",
    "RateLimitCounter",
    "AuditEvent",
]
