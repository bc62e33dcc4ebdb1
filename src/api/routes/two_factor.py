"""
Two-Factor API Routes

Enrollment and management of TOTP two-factor authentication for the
calling principal.
"""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.api.error import raise_for_error
from src.app.use_cases.auth import (
    AuthenticationOrchestrator,
    BackupCodesResponse,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)
from src.depends import CurrentPrincipal, get_current_principal, get_orchestrator

router = APIRouter(prefix="/auth/2fa", tags=["Two-Factor"])


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=16, description="Current TOTP code")


class DisableTwoFactorRequest(BaseModel):
    proof: str = Field(
        ..., min_length=1, max_length=1024, description="Current password or a 2FA code"
    )


@router.post("/setup", status_code=status.HTTP_200_OK, response_model=TwoFactorSetupResponse)
async def setup_two_factor(
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Begin Enrollment

    Returns the secret and otpauth:// URI once. Login is not gated until the
    enrollment is confirmed.
    """
    result = await orchestrator.setup_two_factor(current.principal_id)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post("/confirm", status_code=status.HTTP_200_OK, response_model=BackupCodesResponse)
async def confirm_two_factor(
    request: TwoFactorCodeRequest,
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """Confirm enrollment; the response is the only time backup codes are shown"""
    result = await orchestrator.confirm_two_factor(current.principal_id, request.code)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post("/disable", status_code=status.HTTP_200_OK, response_model=TwoFactorStatusResponse)
async def disable_two_factor(
    request: DisableTwoFactorRequest,
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Disable Two-Factor

    Raises:
        - 403 Forbidden: Proof is neither the password nor a valid code
        - 400 Bad Request: Two-factor is not enabled
    """
    result = await orchestrator.disable_two_factor(current.principal_id, request.proof)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post(
    "/backup-codes", status_code=status.HTTP_200_OK, response_model=BackupCodesResponse
)
async def regenerate_backup_codes(
    request: TwoFactorCodeRequest,
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.regenerate_backup_codes(current.principal_id, request.code)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.get("/status", status_code=status.HTTP_200_OK, response_model=TwoFactorStatusResponse)
async def two_factor_status(
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.two_factor_status(current.principal_id)
    if result.is_err():
        raise_for_error(result.error)
    return result.value
