"""
Token Service

Issues, verifies, refreshes (with mandatory rotation) and revokes the
access/refresh credential pair.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel

from src.api.utils.jwt import (
    InvalidSignatureError,
    MalformedTokenError,
    decode_jwt,
    encode_jwt,
    from_timestamp,
    to_timestamp,
)
from src.app.errors import AuthErrorCode, auth_error
from src.app.services.clock import Clock
from src.app.services.security_events import SecurityEventRecorder, SecurityEventType
from src.app.services.settings import AuthSettings
from src.app.services.unit_of_work import UnitOfWork
from src.domain.entities import Principal, RefreshToken, RevocationReason, Session
from src.libs.result import Result, Return

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenPair(BaseModel):
    """Access + refresh token pair bound to one session"""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_at: datetime
    refresh_expires_at: datetime
    session_id: str


@dataclass(frozen=True)
class AccessClaims:
    principal_id: UUID
    tenant_id: Optional[UUID]
    is_admin: bool
    session_id: UUID
    token_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class RefreshClaims:
    principal_id: UUID
    session_id: UUID
    token_id: UUID
    expires_at: datetime


class TokenSigner:
    """
    Stateless signing and verification.

    Application-scoped: holds the signing key and a clock, performs no I/O.
    """

    def __init__(self, settings: AuthSettings, clock: Clock):
        self.settings = settings
        self.clock = clock

    def sign_access_token(
        self, principal: Principal, session_id: UUID
    ) -> Tuple[str, datetime]:
        now = self.clock.now()
        expires_at = now + self.settings.access_token_ttl
        claims = {
            "sub": str(principal.id),
            "tid": str(principal.tenant_id) if principal.tenant_id else None,
            "adm": bool(principal.is_admin),
            "sid": str(session_id),
            "jti": secrets.token_hex(16),
            "typ": ACCESS_TOKEN_TYPE,
            "iat": to_timestamp(now),
            "exp": to_timestamp(expires_at),
        }
        token = encode_jwt(claims, self.settings.jwt_secret, self.settings.jwt_algorithm)
        return token, from_timestamp(claims["exp"])

    def sign_refresh_token(
        self, principal_id: UUID, session_id: UUID, token_id: UUID, expires_at: datetime
    ) -> str:
        claims = {
            "sub": str(principal_id),
            "sid": str(session_id),
            "jti": str(token_id),
            "typ": REFRESH_TOKEN_TYPE,
            "iat": to_timestamp(self.clock.now()),
            "exp": to_timestamp(expires_at),
        }
        return encode_jwt(claims, self.settings.jwt_secret, self.settings.jwt_algorithm)

    def verify_access_token(self, token: str) -> Result[AccessClaims]:
        """
        Pure verification of an access token.

        Returns:
            Result with AccessClaims, or MALFORMED_TOKEN / INVALID_SIGNATURE /
            TOKEN_EXPIRED
        """
        decoded = self._decode(token, ACCESS_TOKEN_TYPE)
        if decoded.is_err():
            return decoded
        payload = decoded.value
        try:
            claims = AccessClaims(
                principal_id=UUID(payload["sub"]),
                tenant_id=UUID(payload["tid"]) if payload.get("tid") else None,
                is_admin=bool(payload.get("adm", False)),
                session_id=UUID(payload["sid"]),
                token_id=str(payload["jti"]),
                issued_at=from_timestamp(payload["iat"]),
                expires_at=from_timestamp(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            return Return.err(auth_error(AuthErrorCode.MALFORMED_TOKEN, "Malformed token"))
        return Return.ok(claims)

    def verify_refresh_token(self, token: str) -> Result[RefreshClaims]:
        decoded = self._decode(token, REFRESH_TOKEN_TYPE)
        if decoded.is_err():
            return decoded
        payload = decoded.value
        try:
            claims = RefreshClaims(
                principal_id=UUID(payload["sub"]),
                session_id=UUID(payload["sid"]),
                token_id=UUID(payload["jti"]),
                expires_at=from_timestamp(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            return Return.err(auth_error(AuthErrorCode.MALFORMED_TOKEN, "Malformed token"))
        return Return.ok(claims)

    def _decode(self, token: str, expected_type: str) -> Result[dict]:
        try:
            payload = decode_jwt(token, self.settings.jwt_secret, self.settings.jwt_algorithm)
        except MalformedTokenError:
            return Return.err(auth_error(AuthErrorCode.MALFORMED_TOKEN, "Malformed token"))
        except InvalidSignatureError:
            return Return.err(
                auth_error(AuthErrorCode.INVALID_SIGNATURE, "Invalid token signature")
            )

        if payload.get("typ") != expected_type or not isinstance(payload.get("exp"), int):
            return Return.err(auth_error(AuthErrorCode.MALFORMED_TOKEN, "Malformed token"))

        if payload["exp"] <= to_timestamp(self.clock.now()):
            return Return.err(auth_error(AuthErrorCode.TOKEN_EXPIRED, "Token has expired"))

        return Return.ok(payload)


class TokenService:
    """
    Stateful token operations against the refresh-token store.

    Business Rules:
    - Refresh tokens rotate on every use; the old one is revoked atomically
    - Presenting a rotated token again revokes the whole session (theft signal)
    - Every successful refresh touches the session's last_used_at
    - Runs inside the caller's unit of work; the caller commits
    """

    def __init__(
        self,
        uow: UnitOfWork,
        signer: TokenSigner,
        clock: Clock,
        events: SecurityEventRecorder,
    ):
        self.uow = uow
        self.signer = signer
        self.clock = clock
        self.events = events

    @property
    def settings(self) -> AuthSettings:
        return self.signer.settings

    def verify_access_token(self, token: str) -> Result[AccessClaims]:
        return self.signer.verify_access_token(token)

    async def issue_token_pair(self, principal: Principal, session: Session) -> TokenPair:
        """
        Sign a new access token and persist a new refresh-token record for
        `session`. The session is re-bound to the new refresh token.
        """
        now = self.clock.now()
        refresh_expires_at = now + self.settings.refresh_token_ttl
        record = RefreshToken(
            id=uuid4(),
            principal_id=principal.id,
            session_id=session.id,
            created_at=now,
            expires_at=refresh_expires_at,
        )
        await self.uow.refresh_tokens.create(record)
        await self.uow.sessions.bind_refresh_token(session.id, record.id, now, refresh_expires_at)
        return self._build_pair(principal, session.id, record)

    async def refresh(self, refresh_token: str) -> Result[TokenPair]:
        """
        Exchange a refresh token for a new pair, rotating the refresh token.

        Returns:
            Result with the new TokenPair, or MALFORMED_TOKEN / INVALID_SIGNATURE /
            TOKEN_EXPIRED / TOKEN_NOT_FOUND / TOKEN_REVOKED / SESSION_REVOKED /
            ACCOUNT_INACTIVE
        """
        verified = self.signer.verify_refresh_token(refresh_token)
        if verified.is_err():
            return verified
        claims = verified.value
        now = self.clock.now()

        record = await self.uow.refresh_tokens.get_by_id(claims.token_id)
        if record is None:
            return Return.err(
                auth_error(AuthErrorCode.TOKEN_NOT_FOUND, "Refresh token not recognised")
            )

        if record.revoked:
            if record.replaced_by_id is not None:
                await self._handle_reuse(record, now)
            return Return.err(
                auth_error(AuthErrorCode.TOKEN_REVOKED, "Refresh token has been revoked")
            )

        if record.expires_at <= now:
            return Return.err(auth_error(AuthErrorCode.TOKEN_EXPIRED, "Token has expired"))

        session = await self.uow.sessions.get_by_id(record.session_id)
        if session is None or session.revoked:
            return Return.err(
                auth_error(AuthErrorCode.SESSION_REVOKED, "Session has been revoked")
            )

        principal = await self.uow.principals.get_by_id(record.principal_id)
        if principal is None or not principal.is_active:
            return Return.err(
                auth_error(AuthErrorCode.ACCOUNT_INACTIVE, "Account is not active")
            )

        new_expires_at = now + self.settings.refresh_token_ttl
        replacement = RefreshToken(
            id=uuid4(),
            principal_id=record.principal_id,
            session_id=record.session_id,
            created_at=now,
            expires_at=new_expires_at,
        )

        # A revoke committed since the read above loses us this update
        if not await self.uow.sessions.bind_refresh_token(
            session.id, replacement.id, now, new_expires_at
        ):
            return Return.err(
                auth_error(AuthErrorCode.SESSION_REVOKED, "Session has been revoked")
            )

        # Loser of a concurrent rotation sees rowcount 0
        if not await self.uow.refresh_tokens.rotate(record.id, replacement.id, now):
            return Return.err(
                auth_error(AuthErrorCode.TOKEN_REVOKED, "Refresh token has been revoked")
            )
        await self.uow.refresh_tokens.create(replacement)

        return Return.ok(self._build_pair(principal, session.id, replacement))

    async def revoke(self, refresh_token_id: UUID) -> None:
        """Idempotent: revoking an already revoked or unknown token is a no-op"""
        await self.uow.refresh_tokens.revoke(refresh_token_id, self.clock.now())

    async def _handle_reuse(self, record: RefreshToken, now: datetime) -> None:
        """A rotated token came back: assume theft and kill the session"""
        await self.uow.sessions.revoke_by_id(
            record.session_id, RevocationReason.token_reuse.value, now
        )
        await self.uow.refresh_tokens.revoke_by_session_ids([record.session_id], now)
        await self.uow.commit()
        logger.warning(f"Refresh token reuse detected for session {record.session_id}")
        await self.events.record(
            SecurityEventType.REFRESH_TOKEN_REUSE_DETECTED,
            success=False,
            principal_id=str(record.principal_id),
            session_id=str(record.session_id),
        )

    def _build_pair(self, principal: Principal, session_id: UUID, record: RefreshToken) -> TokenPair:
        access_token, access_expires_at = self.signer.sign_access_token(principal, session_id)
        refresh_token = self.signer.sign_refresh_token(
            principal.id, session_id, record.id, record.expires_at
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=access_expires_at,
            refresh_expires_at=from_timestamp(to_timestamp(record.expires_at)),
            session_id=str(session_id),
        )
