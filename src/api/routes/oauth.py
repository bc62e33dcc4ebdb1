"""
OAuth API Routes

Authorization-code sign-in and account linking with external identity
providers (google, github, microsoft).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from src.api.error import raise_for_error
from src.app.use_cases.auth import (
    AuthenticationOrchestrator,
    DeviceInfo,
    OAuthCallbackResponse,
    OAuthProvidersResponse,
    OAuthStartResponse,
)
from src.depends import (
    CurrentPrincipal,
    get_current_principal,
    get_device_info,
    get_orchestrator,
)

router = APIRouter(prefix="/auth/oauth", tags=["OAuth"])


@router.get("/providers", status_code=status.HTTP_200_OK, response_model=OAuthProvidersResponse)
async def list_providers(
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """Providers with credentials configured on this deployment"""
    return orchestrator.oauth_providers().value


@router.get("/{provider}", status_code=status.HTTP_200_OK, response_model=OAuthStartResponse)
async def start_oauth(
    provider: str,
    tenant: Optional[str] = Query(
        None, description="Opaque routing hint echoed back on the callback"
    ),
    device: DeviceInfo = Depends(get_device_info),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Start OAuth Sign-In

    Returns the provider authorization URL. The embedded state is single-use
    and expires after a few minutes.

    Raises:
        - 400 Bad Request: UNSUPPORTED_PROVIDER
        - 429 Too Many Requests: Rate limited
        - 501 Not Implemented: No provider is configured
    """
    result = await orchestrator.start_oauth(provider, tenant_hint=tenant, device=device)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post(
    "/{provider}/link", status_code=status.HTTP_200_OK, response_model=OAuthStartResponse
)
async def start_link(
    provider: str,
    current: CurrentPrincipal = Depends(get_current_principal),
    device: DeviceInfo = Depends(get_device_info),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """Start linking a provider identity to the calling principal"""
    result = await orchestrator.start_oauth(
        provider, principal_id=current.principal_id, device=device
    )
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.get(
    "/callback/{provider}",
    status_code=status.HTTP_200_OK,
    response_model=OAuthCallbackResponse,
)
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    device: DeviceInfo = Depends(get_device_info),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    OAuth Callback

    Signs in (or creates, when auto-provisioning is on) the principal behind
    the provider identity. Answers `mfa_required` when two-factor is enabled
    and `linked` when the flow was started from /link.

    Raises:
        - 400 Bad Request: UNSUPPORTED_PROVIDER
        - 401 Unauthorized: STATE_MISMATCH
        - 403 Forbidden: EMAIL_NOT_VERIFIED, ACCOUNT_INACTIVE
        - 409 Conflict: ACCOUNT_LINK_REQUIRED, LINK_CONFLICT
        - 502 Bad Gateway: PROVIDER_ERROR
    """
    result = await orchestrator.oauth_callback(provider, code, state, device)
    if result.is_err():
        raise_for_error(result.error)
    return result.value
