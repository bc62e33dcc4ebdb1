"""
Security Event Sink

Write-only audit trail consumed by the auth core. Recording is
fire-and-forget: a failing sink is logged and never fails the caller.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

logger = logging.getLogger(__name__)

SINK_TIMEOUT_SECONDS = 2.0


class SecurityEventType:
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGIN_MFA_REQUIRED = "login_mfa_required"
    TWO_FACTOR_SUCCEEDED = "two_factor_succeeded"
    TWO_FACTOR_FAILED = "two_factor_failed"
    TWO_FACTOR_ENROLLMENT_STARTED = "two_factor_enrollment_started"
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    TWO_FACTOR_DISABLE_DENIED = "two_factor_disable_denied"
    BACKUP_CODE_USED = "backup_code_used"
    BACKUP_CODES_REGENERATED = "backup_codes_regenerated"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    REFRESH_TOKEN_REUSE_DETECTED = "refresh_token_reuse_detected"
    LOGOUT = "logout"
    SESSION_REVOKED = "session_revoked"
    SESSIONS_REVOKED = "sessions_revoked"
    SESSION_REVOKE_DENIED = "session_revoke_denied"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_CHANGE_FAILED = "password_change_failed"
    PASSWORD_CHANGE_FORCED = "password_change_forced"
    OAUTH_STARTED = "oauth_started"
    OAUTH_LOGIN_SUCCEEDED = "oauth_login_succeeded"
    OAUTH_LOGIN_FAILED = "oauth_login_failed"
    OAUTH_PRINCIPAL_CREATED = "oauth_principal_created"
    OAUTH_LINKED = "oauth_linked"
    PRINCIPAL_DEACTIVATED = "principal_deactivated"
    PRINCIPAL_ACTIVATED = "principal_activated"
    RATE_LIMITED = "rate_limited"


class SecurityEventSink(ABC):
    @abstractmethod
    async def record(self, event_type: str, attributes: Dict[str, Any]) -> None:
        pass


class SecurityEventRecorder:
    """Wraps a sink so that recording can never fail or stall an auth operation"""

    def __init__(self, sink: SecurityEventSink, timeout: float = SINK_TIMEOUT_SECONDS):
        self.sink = sink
        self.timeout = timeout

    async def record(self, event_type: str, success: bool = True, **attributes: Any) -> None:
        payload = {"success": success}
        payload.update({k: v for k, v in attributes.items() if v is not None})
        try:
            await asyncio.wait_for(self.sink.record(event_type, payload), self.timeout)
        except Exception:
            logger.exception(f"Security event sink failed for {event_type}")
