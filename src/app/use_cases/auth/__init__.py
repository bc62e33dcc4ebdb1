"""
Authentication Use Cases

The auth core's application boundary and its DTOs.
"""

from .authentication_orchestrator import AuthenticationOrchestrator
from .dtos import (
    BackupCodesResponse,
    DeviceInfo,
    GeneratedPasswordResponse,
    LoginResponse,
    LogoutResponse,
    OAuthCallbackResponse,
    OAuthProvidersResponse,
    OAuthStartResponse,
    PasswordChangeRequiredResponse,
    PasswordChangeResponse,
    PasswordStrengthResponse,
    PasswordValidationResponse,
    PrincipalStatusResponse,
    RevokeSessionsResponse,
    SecurityEventInfo,
    SecurityEventsResponse,
    SessionHistoryEntry,
    SessionInfo,
    SessionStats,
    SuspiciousSessionInfo,
    TokenPair,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)

__all__ = [
    # Use Cases
    "AuthenticationOrchestrator",
    # DTOs - Inputs
    "DeviceInfo",
    # DTOs - Responses
    "BackupCodesResponse",
    "GeneratedPasswordResponse",
    "LoginResponse",
    "LogoutResponse",
    "OAuthCallbackResponse",
    "OAuthProvidersResponse",
    "OAuthStartResponse",
    "PasswordChangeRequiredResponse",
    "PasswordChangeResponse",
    "PasswordStrengthResponse",
    "PasswordValidationResponse",
    "PrincipalStatusResponse",
    "RevokeSessionsResponse",
    "SecurityEventInfo",
    "SecurityEventsResponse",
    "SessionHistoryEntry",
    "SessionInfo",
    "SessionStats",
    "SuspiciousSessionInfo",
    "TokenPair",
    "TwoFactorSetupResponse",
    "TwoFactorStatusResponse",
]
