"""
Session Manager

Tracks the login contexts of each principal and controls their lifecycle.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel

from src.app.errors import AuthErrorCode, auth_error
from src.app.services.clock import Clock
from src.app.services.settings import AuthSettings
from src.app.services.unit_of_work import UnitOfWork
from src.domain.entities import RevocationReason, Session, SessionPolicy
from src.libs.result import Result, Return

RECENT_ACTIVITY_WINDOW = timedelta(hours=24)
STALE_SESSION_AGE = timedelta(days=30)
SHARED_IP_THRESHOLD = 3
AUTOMATED_USER_AGENT = re.compile(r"bot|crawler|spider|scraper|curl|wget", re.IGNORECASE)


class DeviceInfo(BaseModel):
    """Client context captured at login"""

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class SessionSummary:
    total: int
    active: int
    recently_active: int
    current_session_id: Optional[UUID]
    last_activity: Optional[datetime]


@dataclass(frozen=True)
class ActiveSession:
    session: Session
    is_current: bool


class SuspicionReason:
    STALE = "stale"
    SHARED_IP = "shared_ip"
    AUTOMATED_USER_AGENT = "automated_user_agent"


@dataclass(frozen=True)
class SuspiciousSession:
    session: Session
    is_current: bool
    reasons: Tuple[str, ...]


class SessionManager:
    """
    Session lifecycle.

    Business Rules:
    - A principal may only revoke their own sessions
    - Revoking a session cascades to its refresh tokens
    - Revoked sessions are flagged, never deleted
    - Single-session policy revokes older sessions when a new one starts
    - Runs inside the caller's unit of work; the caller commits
    """

    def __init__(self, uow: UnitOfWork, settings: AuthSettings, clock: Clock):
        self.uow = uow
        self.settings = settings
        self.clock = clock

    async def create_session(self, principal_id: UUID, device: DeviceInfo) -> Session:
        """
        Allocate a session row. The caller binds a refresh token to it with
        TokenService.issue_token_pair.
        """
        now = self.clock.now()
        if self.settings.session_policy == SessionPolicy.single.value:
            await self._revoke_all(
                principal_id, RevocationReason.single_session_policy, except_session_id=None
            )

        session = Session(
            principal_id=principal_id,
            user_agent=device.user_agent[:512] if device.user_agent else None,
            ip_address=device.ip_address,
            created_at=now,
            last_used_at=now,
            expires_at=now + self.settings.refresh_token_ttl,
        )
        return await self.uow.sessions.create(session)

    async def list_sessions(
        self, principal_id: UUID, current_session_id: Optional[UUID] = None
    ) -> List[ActiveSession]:
        """Active sessions (not revoked, not expired), most recently used first"""
        sessions = await self.uow.sessions.list_active_by_principal_id(
            principal_id, self.clock.now()
        )
        return [ActiveSession(session=s, is_current=s.id == current_session_id) for s in sessions]

    async def touch(self, session_id: UUID) -> bool:
        """Liveness signal; False once the session is revoked"""
        return await self.uow.sessions.touch(session_id, self.clock.now())

    async def revoke_session(
        self,
        principal_id: UUID,
        session_id: UUID,
        reason: RevocationReason = RevocationReason.user_revoked,
    ) -> Result[UUID]:
        """
        Revoke one session owned by `principal_id`.

        Revoking an already revoked session of your own is a no-op success.

        Returns:
            Result with the session id, or SESSION_NOT_FOUND / FORBIDDEN
        """
        session = await self.uow.sessions.get_by_id(session_id)
        if session is None:
            return Return.err(auth_error(AuthErrorCode.SESSION_NOT_FOUND, "Session not found"))

        if session.principal_id != principal_id:
            return Return.err(
                auth_error(AuthErrorCode.FORBIDDEN, "Session does not belong to current user")
            )

        now = self.clock.now()
        await self.uow.sessions.revoke_by_id(session_id, reason.value, now)
        await self.uow.refresh_tokens.revoke_by_session_ids([session_id], now)
        return Return.ok(session_id)

    async def revoke_all(
        self,
        principal_id: UUID,
        except_session_id: Optional[UUID] = None,
        reason: RevocationReason = RevocationReason.revoke_all,
    ) -> int:
        """Log out everywhere, optionally keeping the calling session. Returns count."""
        return await self._revoke_all(principal_id, reason, except_session_id)

    async def session_stats(
        self, principal_id: UUID, current_session_id: Optional[UUID] = None
    ) -> SessionSummary:
        now = self.clock.now()
        active = [a.session for a in await self.list_sessions(principal_id)]
        total = await self.uow.sessions.count_by_principal_id(principal_id)
        recent = [s for s in active if now - s.last_used_at < RECENT_ACTIVITY_WINDOW]
        current = next((s for s in active if s.id == current_session_id), None)
        return SessionSummary(
            total=total,
            active=len(active),
            recently_active=len(recent),
            current_session_id=current.id if current else None,
            last_activity=active[0].last_used_at if active else None,
        )

    async def detect_suspicious_sessions(
        self, principal_id: UUID, current_session_id: Optional[UUID] = None
    ) -> List[SuspiciousSession]:
        """
        Flag active sessions worth a second look. Advisory only; nothing is
        revoked here.

        A session is flagged when it has been idle longer than
        STALE_SESSION_AGE, when more than SHARED_IP_THRESHOLD other sessions
        share its IP, or when its user agent looks automated.
        """
        now = self.clock.now()
        active = await self.list_sessions(principal_id, current_session_id)
        flagged = []
        for entry in active:
            session = entry.session
            reasons = []
            if now - session.last_used_at > STALE_SESSION_AGE:
                reasons.append(SuspicionReason.STALE)
            if session.ip_address:
                same_ip = [
                    other
                    for other in active
                    if other.session.ip_address == session.ip_address
                    and other.session.id != session.id
                ]
                if len(same_ip) > SHARED_IP_THRESHOLD:
                    reasons.append(SuspicionReason.SHARED_IP)
            if session.user_agent and AUTOMATED_USER_AGENT.search(session.user_agent):
                reasons.append(SuspicionReason.AUTOMATED_USER_AGENT)
            if reasons:
                flagged.append(SuspiciousSession(session, entry.is_current, tuple(reasons)))
        return flagged

    async def session_history(self, principal_id: UUID, limit: int = 50) -> List[Session]:
        """Every session including revoked and expired ones, newest first"""
        return await self.uow.sessions.list_by_principal_id(principal_id, limit)

    async def _revoke_all(
        self,
        principal_id: UUID,
        reason: RevocationReason,
        except_session_id: Optional[UUID],
    ) -> int:
        now = self.clock.now()
        revoked_ids = await self.uow.sessions.revoke_all_by_principal_id(
            principal_id, reason.value, now, except_session_id=except_session_id
        )
        await self.uow.refresh_tokens.revoke_by_session_ids(revoked_ids, now)
        return len(revoked_ids)
