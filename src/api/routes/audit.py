"""
Audit API Routes

Lets a principal read their own security event trail.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from src.api.error import raise_for_error
from src.app.use_cases.auth import AuthenticationOrchestrator, SecurityEventsResponse
from src.depends import CurrentPrincipal, get_current_principal, get_orchestrator

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get(
    "/security-events",
    status_code=status.HTTP_200_OK,
    response_model=SecurityEventsResponse,
)
async def get_security_events(
    current: CurrentPrincipal = Depends(get_current_principal),
    orchestrator: AuthenticationOrchestrator = Depends(get_orchestrator),
    limit: int = Query(50, ge=1, le=100, description="Maximum number of events to return"),
    cursor: Optional[str] = Query(None, description="Pagination cursor"),
):
    """
    Get Security Events

    Query Parameters:
        - limit: Maximum number of events to return (1-100, default 50)
        - cursor: Pagination cursor for fetching next page

    Returns:
        - events: Security events ordered by newest first
        - next_cursor: Cursor for next page (null if no more events)

    Raises:
        - 401 Unauthorized: Invalid or expired access token
    """
    result = await orchestrator.list_security_events(
        current.principal_id, limit=limit, cursor=cursor
    )
    if result.is_err():
        raise_for_error(result.error)
    return result.value
