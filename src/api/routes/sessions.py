from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from src.api.error import raise_for_error
from src.app.use_cases.auth import (
    AuthenticationOrchestrator,
    RevokeSessionsResponse,
    SessionHistoryEntry,
    SessionInfo,
    SessionStats,
    SuspiciousSessionInfo,
)
from src.depends import CurrentPrincipal, get_current_principal, get_orchestrator

router = APIRouter(prefix="/sessions", tags=["Sessions"])


class RevokeAllSessionsRequest(BaseModel):
    """Request to revoke all sessions of the caller"""

    except_current: bool = Field(True, description="Keep the session making this request")


@router.get("", status_code=status.HTTP_200_OK, response_model=List[SessionInfo])
async def list_sessions(
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """Active sessions of the caller, most recently used first"""
    result = await orchestrator.list_sessions(current.principal_id, current.session_id)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.get("/stats", status_code=status.HTTP_200_OK, response_model=SessionStats)
async def session_stats(
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.session_stats(current.principal_id, current.session_id)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.get("/history", status_code=status.HTTP_200_OK, response_model=List[SessionHistoryEntry])
async def session_history(
    limit: int = Query(50, ge=1, le=200),
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """Every session of the caller, revoked and expired ones included, newest first"""
    result = await orchestrator.session_history(current.principal_id, limit)
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.get(
    "/suspicious", status_code=status.HTTP_200_OK, response_model=List[SuspiciousSessionInfo]
)
async def suspicious_sessions(
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Suspicious Sessions

    Active sessions that have been idle for over 30 days, share an IP with
    more than three others, or report an automated user agent. Review them
    and revoke what you do not recognise.
    """
    result = await orchestrator.detect_suspicious_sessions(
        current.principal_id, current.session_id
    )
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.post("/revoke-all", status_code=status.HTTP_200_OK, response_model=RevokeSessionsResponse)
async def revoke_all_sessions(
    request: RevokeAllSessionsRequest,
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Revoke All Sessions

    Logs the caller out everywhere. With `except_current` (the default) the
    session that made the request stays signed in.
    """
    result = await orchestrator.revoke_all_sessions(
        current.principal_id,
        current_session_id=current.session_id,
        except_current=request.except_current,
    )
    if result.is_err():
        raise_for_error(result.error)
    return result.value


@router.delete(
    "/{session_id}", status_code=status.HTTP_200_OK, response_model=RevokeSessionsResponse
)
async def revoke_session(
    session_id: UUID,
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
):
    """
    Revoke Specific Session

    Ends one session and every refresh token issued under it.

    Raises:
        - 403 Forbidden: Session belongs to another principal
        - 404 Not Found: Session not found
    """
    result = await orchestrator.revoke_session(current.principal_id, session_id)
    if result.is_err():
        raise_for_error(result.error)
    return result.value
