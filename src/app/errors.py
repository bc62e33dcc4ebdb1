"""
Error taxonomy for the authentication core.

``AuthErrorCode`` is the closed set of error kinds a use case may return.
The exception classes below are raised by adapters for infrastructure
failures and translated to ``SERVICE_UNAVAILABLE`` / ``PROVIDER_ERROR`` at
the orchestrator boundary.
"""

from enum import Enum
from typing import Any, Dict, Optional

from src.libs.result import Error


class AuthErrorCode(str, Enum):
    # Authentication failures
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    INVALID_CODE = "INVALID_CODE"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"
    NO_ENROLLMENT = "NO_ENROLLMENT"
    ALREADY_ENROLLED = "ALREADY_ENROLLED"

    # Token failures
    MALFORMED_TOKEN = "MALFORMED_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    SESSION_REVOKED = "SESSION_REVOKED"

    # Sessions / authorization
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    ADMIN_KEY_INVALID = "ADMIN_KEY_INVALID"
    PRINCIPAL_NOT_FOUND = "PRINCIPAL_NOT_FOUND"

    # Input validation
    PASSWORD_POLICY_VIOLATION = "PASSWORD_POLICY_VIOLATION"

    # OAuth
    UNSUPPORTED_PROVIDER = "UNSUPPORTED_PROVIDER"
    STATE_MISMATCH = "STATE_MISMATCH"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    ACCOUNT_LINK_REQUIRED = "ACCOUNT_LINK_REQUIRED"
    LINK_CONFLICT = "LINK_CONFLICT"

    # Admission / infrastructure
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


def auth_error(
    code: AuthErrorCode, message: str, details: Optional[Dict[str, Any]] = None
) -> Error:
    return Error(code.value, message, details or {})


INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class ConfigurationError(RuntimeError):
    """Raised at startup when the service cannot run safely (e.g. no signing key)."""


class ServiceUnavailableError(Exception):
    """A backing store or cache could not be reached. Safe to retry."""


class ProviderUnavailableError(ServiceUnavailableError):
    """The OAuth provider failed, timed out or answered with an error."""
