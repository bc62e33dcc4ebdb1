from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from src.api.error import raise_for_error
from src.app.use_cases.auth import (
    AuthenticationOrchestrator,
    DeviceInfo,
    LoginResponse,
    LogoutResponse,
    TokenPair,
)
from src.depends import (
    CurrentPrincipal,
    get_current_principal,
    get_device_info,
    get_orchestrator,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


class LoginRequest(BaseModel):
    """Login HTTP request payload"""

    email: EmailStr = Field(..., description="Account email address")
    password: str = Field(..., min_length=1, max_length=1024, description="Account password")


class CompleteTwoFactorRequest(BaseModel):
    """Second login step: the challenge from /auth/login plus a code"""

    challenge_id: str = Field(..., description="Challenge ID returned by login")
    code: str = Field(..., min_length=6, max_length=16, description="TOTP or backup code")


class RefreshTokenRequest(BaseModel):
    """Refresh token HTTP request payload"""

    refresh_token: str = Field(..., description="Refresh token from login or previous refresh")


class MeResponse(BaseModel):
    """Claims of the presented access token"""

    principal_id: str
    tenant_id: Optional[str]
    is_admin: bool
    session_id: str


@router.post("/login", status_code=status.HTTP_200_OK, response_model=LoginResponse)
async def login(
    request: LoginRequest,
    device: DeviceInfo = Depends(get_device_info),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Password Login

    Returns tokens directly, or `mfa_required` with a short-lived challenge
    when two-factor is enabled. Unknown email and wrong password both answer
    INVALID_CREDENTIALS.

    Raises:
        - 401 Unauthorized: Invalid credentials
        - 403 Forbidden: Account inactive
        - 429 Too Many Requests: Rate limited (Retry-After header)
        - 503 Service Unavailable: Backing store unreachable
    """
    result = await orchestrator.login(request.email, request.password, device)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post("/2fa/complete", status_code=status.HTTP_200_OK, response_model=LoginResponse)
async def complete_two_factor(
    request: CompleteTwoFactorRequest,
    device: DeviceInfo = Depends(get_device_info),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Complete Two-Factor Login

    Raises:
        - 401 Unauthorized: Invalid code, or challenge expired/used
        - 429 Too Many Requests: Too many code attempts
    """
    result = await orchestrator.complete_two_factor(request.challenge_id, request.code, device)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post("/refresh", status_code=status.HTTP_200_OK, response_model=TokenPair)
async def refresh(
    request: RefreshTokenRequest,
    device: DeviceInfo = Depends(get_device_info),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Refresh Access Token

    The refresh token is rotated: the presented one stops working and a new
    one is returned. Presenting an already rotated token revokes the session.

    Raises:
        - 401 Unauthorized: Token malformed, forged, expired, revoked or session revoked
        - 403 Forbidden: Account inactive
    """
    result = await orchestrator.refresh(request.refresh_token, device)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post("/logout", status_code=status.HTTP_200_OK, response_model=LogoutResponse)
async def logout(
    request: RefreshTokenRequest,
    device: DeviceInfo = Depends(get_device_info),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """Logout - idempotent, always 200"""
    result = await orchestrator.logout(request.refresh_token, device)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.get("/me", status_code=status.HTTP_200_OK, response_model=MeResponse)
async def me(current: CurrentPrincipal = Depends(get_current_principal)):
    return MeResponse(
        principal_id=str(current.principal_id),
        tenant_id=str(current.tenant_id) if current.tenant_id else None,
        is_admin=current.is_admin,
        session_id=str(current.session_id),
    )
