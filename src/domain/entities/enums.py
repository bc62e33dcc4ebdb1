"""
Auth Core Domain Enums

All enumeration types used across domain entities.
"""

from enum import Enum


class TwoFactorStatus(str, Enum):
    """Two-factor enrollment state (no row means unenrolled)"""

    pending = "pending"
    enrolled = "enrolled"


class SessionPolicy(str, Enum):
    """How many concurrent sessions a principal may hold"""

    multi = "multi"
    single = "single"


class RevocationReason(str, Enum):
    """Why a session stopped being usable"""

    logout = "logout"
    user_revoked = "user_revoked"
    revoke_all = "revoke_all"
    password_changed = "password_changed"
    token_reuse = "token_reuse"
    single_session_policy = "single_session_policy"
    deactivated = "deactivated"
