from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field

from src.api.error import raise_for_error
from src.app.use_cases.auth import (
    AuthenticationOrchestrator,
    GeneratedPasswordResponse,
    PasswordChangeResponse,
    PasswordValidationResponse,
)
from src.depends import CurrentPrincipal, get_current_principal, get_orchestrator

router = APIRouter(prefix="/auth/password", tags=["Password"])


class ValidatePasswordRequest(BaseModel):
    password: str = Field(..., max_length=1024)
    email: Optional[EmailStr] = Field(None, description="Rejects passwords containing it")


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = Field(
        None, max_length=1024, description="Required unless the account has no password yet"
    )
    new_password: str = Field(..., min_length=1, max_length=1024)


@router.post(
    "/validate", status_code=status.HTTP_200_OK, response_model=PasswordValidationResponse
)
async def validate_password(
    request: ValidatePasswordRequest,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """Full checklist of violations plus an advisory strength score"""
    result = await orchestrator.validate_password(request.password, request.email)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.get(
    "/generate", status_code=status.HTTP_200_OK, response_model=GeneratedPasswordResponse
)
async def generate_password(
    length: int = Query(16, ge=1, le=1024),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.generate_password(length)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post("/change", status_code=status.HTTP_200_OK, response_model=PasswordChangeResponse)
async def change_password(
    request: ChangePasswordRequest,
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Change Password

    Every other session is logged out; the calling session stays.

    Raises:
        - 401 Unauthorized: Current password is wrong
        - 422 Unprocessable Entity: New password violates the policy (violations listed)
    """
    result = await orchestrator.change_password(
        current.principal_id,
        request.current_password,
        request.new_password,
        current_session_id=current.session_id,
    )
    if result.is_err():
        raise_for_error(result.error)
    return result.value
