"""
Admin API Routes - System Administration Endpoints

These endpoints are for internal service integrations.
Authentication is via Admin API Key, not access tokens.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from src.api.error import raise_for_error
from src.api.utils.admin_auth import verify_admin_api_key
from src.app.use_cases.auth import (
    AuthenticationOrchestrator,
    PasswordChangeRequiredResponse,
    PrincipalStatusResponse,
)
from src.depends import get_orchestrator

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post(
    "/principals/{principal_id}/deactivate",
    status_code=status.HTTP_200_OK,
    response_model=PrincipalStatusResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def deactivate_principal(
    principal_id: UUID,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Deactivate Principal

    Blocks login, refresh and OAuth sign-in, and revokes every session.

    Requires: X-Admin-API-Key header

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 404 Not Found: PRINCIPAL_NOT_FOUND
    """
    result = await orchestrator.set_principal_active(principal_id, is_active=False)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post(
    "/principals/{principal_id}/activate",
    status_code=status.HTTP_200_OK,
    response_model=PrincipalStatusResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def activate_principal(
    principal_id: UUID,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Activate Principal

    Requires: X-Admin-API-Key header
    """
    result = await orchestrator.set_principal_active(principal_id, is_active=True)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post(
    "/principals/{principal_id}/force-password-change",
    status_code=status.HTTP_200_OK,
    response_model=PasswordChangeRequiredResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def force_password_change(
    principal_id: UUID,
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Force Password Change

    Every sign-in reports `password_change_required` until the principal
    sets a new password. Existing sessions stay valid.

    Requires: X-Admin-API-Key header

    Raises:
        - 401 Unauthorized: Missing or invalid admin API key
        - 404 Not Found: PRINCIPAL_NOT_FOUND
    """
    result = await orchestrator.force_password_change(principal_id)
    if result.is_err():
        raise_for_error(result.error)
    return result.value
