"""
Authentication Orchestrator

The application boundary of the auth core. Composes the password policy,
two-factor, token, session and OAuth services into the exposed flows:

    Anonymous -> CredentialsSubmitted -> AwaitingTwoFactor | Authenticated
              -> Authenticated -> LoggedOut
"""

import functools
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from src.app.errors import (
    INVALID_CREDENTIALS_MESSAGE,
    AuthErrorCode,
    ServiceUnavailableError,
    auth_error,
)
from src.app.services.auth_context import AuthContext
from src.app.services.oauth_linker import OAuthLinker
from src.app.services.password_policy import PasswordViolation, UserInfo
from src.app.services.passwords import burn_password_check, hash_password, verify_password
from src.app.services.rate_limiter import admit
from src.app.services.security_events import SecurityEventType
from src.app.services.session_manager import DeviceInfo, SessionManager
from src.app.services.token_service import TokenPair, TokenService
from src.app.services.two_factor_service import TwoFactorService, VerificationMethod
from src.app.services.unit_of_work import UnitOfWork
from src.domain.entities import LoginChallenge, PasswordHistory, Principal, RevocationReason
from src.libs.result import Error, Result, Return
from .dtos import (
    BackupCodesResponse,
    GeneratedPasswordResponse,
    LoginResponse,
    LogoutResponse,
    OAuthCallbackResponse,
    OAuthProviderInfo,
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
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
)

logger = logging.getLogger(__name__)

AUTHENTICATED = "authenticated"
MFA_REQUIRED = "mfa_required"
LINKED = "linked"


def infrastructure_boundary(func):
    """Translate store, cache and network failures into SERVICE_UNAVAILABLE"""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except (ServiceUnavailableError, SQLAlchemyError, OSError):
            logger.exception(f"Infrastructure failure in {func.__name__}")
            return Return.err(
                auth_error(
                    AuthErrorCode.SERVICE_UNAVAILABLE,
                    "Service temporarily unavailable, please retry",
                )
            )

    return wrapper


class AuthenticationOrchestrator:
    """
    Login / refresh / logout state machine plus session, two-factor,
    password and OAuth management.

    Business Rules:
    - No bearer token is issued before the second factor clears
    - Unknown email and wrong password are indistinguishable to the caller
    - Every transition is rate limited and emits a security event
    - Each operation is one unit of work, committed only on success
    - Infrastructure exceptions never cross this boundary
    """

    def __init__(self, uow: UnitOfWork, context: AuthContext):
        self.uow = uow
        self.context = context
        self.settings = context.settings
        self.clock = context.clock
        self.events = context.events
        self.password_policy = context.password_policy

        self.tokens = TokenService(uow, context.signer, context.clock, context.events)
        self.sessions = SessionManager(uow, context.settings, context.clock)
        self.two_factor = TwoFactorService(
            uow, context.settings, context.clock, context.rate_limiter
        )
        self.oauth = (
            OAuthLinker(uow, context.settings, context.clock, context.provider_client)
            if context.provider_client is not None
            else None
        )

    # ------------------------------------------------------------------
    # Login / refresh / logout
    # ------------------------------------------------------------------

    @infrastructure_boundary
    async def login(
        self, email: str, password: str, device: Optional[DeviceInfo] = None
    ) -> Result[LoginResponse]:
        """
        Password login.

        Returns:
            Result with LoginResponse ("authenticated" with tokens, or
            "mfa_required" with a challenge id), or INVALID_CREDENTIALS /
            ACCOUNT_INACTIVE / RATE_LIMITED
        """
        device = device or DeviceInfo()
        email = email.strip().lower()

        if device.ip_address:
            limited = await self._admit(
                f"login:ip:{device.ip_address}", self.settings.login_ip_limit, device
            )
            if limited is not None:
                return limited
        limited = await self._admit(
            f"login:account:{email}", self.settings.login_account_limit, device, email=email
        )
        if limited is not None:
            return limited

        async with self.uow:
            principal = await self.uow.principals.get_by_email(email)

            if principal is None or not principal.password_hash:
                # Same bcrypt cost whether or not the account exists
                burn_password_check(password, self.settings.bcrypt_rounds)
                reason = "unknown_email" if principal is None else "no_password"
                return await self._login_failed(reason, device, email=email, principal=principal)

            if not verify_password(password, principal.password_hash):
                return await self._login_failed(
                    "bad_password", device, email=email, principal=principal
                )

            if not principal.is_active:
                await self._record(
                    SecurityEventType.LOGIN_FAILED,
                    False,
                    principal,
                    device,
                    reason="account_inactive",
                )
                return Return.err(
                    auth_error(AuthErrorCode.ACCOUNT_INACTIVE, "Account is not active")
                )

            if principal.two_factor_enabled:
                response = await self._issue_challenge(principal, device)
                await self.uow.commit()
                await self._record(SecurityEventType.LOGIN_MFA_REQUIRED, True, principal, device)
                return Return.ok(response)

            tokens = await self._start_session(principal, device)
            change_required = self._password_change_required(principal)
            await self.uow.commit()

        logger.info(f"Principal {principal.id} logged in")
        await self._record(
            SecurityEventType.LOGIN_SUCCEEDED,
            True,
            principal,
            device,
            session_id=tokens.session_id,
            method="password",
        )
        return Return.ok(
            LoginResponse(
                status=AUTHENTICATED, tokens=tokens, password_change_required=change_required
            )
        )

    @infrastructure_boundary
    async def complete_two_factor(
        self, challenge_id: str, code: str, device: Optional[DeviceInfo] = None
    ) -> Result[LoginResponse]:
        """
        Second step of a 2FA login.

        An invalid code leaves the challenge usable until it expires; the
        per-principal 2FA rate limit bounds the attempts.

        Returns:
            Result with LoginResponse, or CHALLENGE_EXPIRED / INVALID_CODE /
            ACCOUNT_INACTIVE / RATE_LIMITED
        """
        expired = auth_error(
            AuthErrorCode.CHALLENGE_EXPIRED, "Login challenge is invalid or has expired"
        )
        try:
            challenge_uuid = UUID(challenge_id)
        except (TypeError, ValueError):
            return Return.err(expired)

        async with self.uow:
            now = self.clock.now()
            challenge = await self.uow.login_challenges.get_by_id(challenge_uuid)
            if (
                challenge is None
                or challenge.consumed_at is not None
                or challenge.expires_at <= now
            ):
                await self.events.record(
                    SecurityEventType.TWO_FACTOR_FAILED,
                    success=False,
                    reason="challenge_expired",
                    challenge_id=challenge_id,
                )
                return Return.err(expired)

            login_device = DeviceInfo(
                user_agent=challenge.user_agent or (device.user_agent if device else None),
                ip_address=challenge.ip_address or (device.ip_address if device else None),
            )
            principal = await self.uow.principals.get_by_id(challenge.principal_id)
            principal_id = challenge.principal_id
            tenant_id = principal.tenant_id if principal else None

            verified = await self.two_factor.verify_login(challenge.principal_id, code)
            if verified.is_ok():
                # Loser of a concurrent completion rolls back, un-consuming its backup code
                if not await self.uow.login_challenges.consume(challenge.id, now):
                    return Return.err(expired)

                if principal is None or not principal.is_active:
                    return Return.err(
                        auth_error(AuthErrorCode.ACCOUNT_INACTIVE, "Account is not active")
                    )

                tokens = await self._start_session(principal, login_device)
                change_required = self._password_change_required(principal)
                await self.uow.commit()

        # Recorded after the rollback; the audit sink writes through its own connection
        if verified.is_err():
            await self._record_denial(
                SecurityEventType.TWO_FACTOR_FAILED,
                verified.error,
                principal_id,
                tenant_id,
                login_device,
            )
            return verified

        if verified.value == VerificationMethod.BACKUP_CODE:
            await self._record(SecurityEventType.BACKUP_CODE_USED, True, principal, login_device)
        await self._record(SecurityEventType.TWO_FACTOR_SUCCEEDED, True, principal, login_device)
        await self._record(
            SecurityEventType.LOGIN_SUCCEEDED,
            True,
            principal,
            login_device,
            session_id=tokens.session_id,
            method=verified.value,
        )
        return Return.ok(
            LoginResponse(
                status=AUTHENTICATED, tokens=tokens, password_change_required=change_required
            )
        )

    @infrastructure_boundary
    async def refresh(
        self, refresh_token: str, device: Optional[DeviceInfo] = None
    ) -> Result[TokenPair]:
        """
        Rotate a refresh token.

        Returns:
            Result with the new TokenPair, or a token/session error /
            ACCOUNT_INACTIVE / RATE_LIMITED
        """
        device = device or DeviceInfo()
        if device.ip_address:
            limited = await self._admit(
                f"refresh:ip:{device.ip_address}", self.settings.refresh_limit, device
            )
            if limited is not None:
                return limited

        async with self.uow:
            result = await self.tokens.refresh(refresh_token)
            if result.is_ok():
                await self.uow.commit()

        if result.is_err():
            logger.warning(f"Token refresh rejected: {result.error.code}")
            await self.events.record(
                SecurityEventType.TOKEN_REFRESH_FAILED,
                success=False,
                reason=result.error.code,
                ip_address=device.ip_address,
                user_agent=device.user_agent,
            )
            return result

        claims = self.tokens.verify_access_token(result.value.access_token).value
        await self.events.record(
            SecurityEventType.TOKEN_REFRESHED,
            principal_id=str(claims.principal_id),
            tenant_id=str(claims.tenant_id) if claims.tenant_id else None,
            session_id=result.value.session_id,
            ip_address=device.ip_address,
        )
        return result

    @infrastructure_boundary
    async def logout(
        self, refresh_token: str, device: Optional[DeviceInfo] = None
    ) -> Result[LogoutResponse]:
        """Revoke the session and refresh token. Always ok, even when already logged out."""
        device = device or DeviceInfo()
        verified = self.context.signer.verify_refresh_token(refresh_token)
        if verified.is_err():
            return Return.ok(LogoutResponse())
        claims = verified.value

        async with self.uow:
            revoked = await self.sessions.revoke_session(
                claims.principal_id, claims.session_id, RevocationReason.logout
            )
            await self.tokens.revoke(claims.token_id)
            await self.uow.commit()

        if revoked.is_ok():
            await self.events.record(
                SecurityEventType.LOGOUT,
                principal_id=str(claims.principal_id),
                session_id=str(claims.session_id),
                ip_address=device.ip_address,
            )
        return Return.ok(LogoutResponse())

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @infrastructure_boundary
    async def list_sessions(
        self, principal_id: UUID, current_session_id: Optional[UUID] = None
    ) -> Result[List[SessionInfo]]:
        async with self.uow:
            active = await self.sessions.list_sessions(principal_id, current_session_id)
            # Rows expire when the unit of work rolls back on exit
            sessions = [
                SessionInfo(
                    session_id=str(a.session.id),
                    device=a.session.user_agent,
                    ip_address=a.session.ip_address,
                    created_at=a.session.created_at,
                    last_used_at=a.session.last_used_at,
                    is_current=a.is_current,
                )
                for a in active
            ]

        return Return.ok(sessions)

    @infrastructure_boundary
    async def session_stats(
        self, principal_id: UUID, current_session_id: Optional[UUID] = None
    ) -> Result[SessionStats]:
        async with self.uow:
            summary = await self.sessions.session_stats(principal_id, current_session_id)

        return Return.ok(
            SessionStats(
                total_sessions=summary.total,
                active_sessions=summary.active,
                recently_active_sessions=summary.recently_active,
                current_session_id=(
                    str(summary.current_session_id) if summary.current_session_id else None
                ),
                last_activity=summary.last_activity,
            )
        )

    @infrastructure_boundary
    async def detect_suspicious_sessions(
        self, principal_id: UUID, current_session_id: Optional[UUID] = None
    ) -> Result[List[SuspiciousSessionInfo]]:
        async with self.uow:
            flagged = await self.sessions.detect_suspicious_sessions(
                principal_id, current_session_id
            )
            sessions = [
                SuspiciousSessionInfo(
                    session_id=str(f.session.id),
                    device=f.session.user_agent,
                    ip_address=f.session.ip_address,
                    created_at=f.session.created_at,
                    last_used_at=f.session.last_used_at,
                    is_current=f.is_current,
                    reasons=list(f.reasons),
                )
                for f in flagged
            ]

        if sessions:
            logger.info(f"{len(sessions)} suspicious session(s) for principal {principal_id}")
        return Return.ok(sessions)

    @infrastructure_boundary
    async def session_history(
        self, principal_id: UUID, limit: int = 50
    ) -> Result[List[SessionHistoryEntry]]:
        """Sessions in every state, newest first"""
        async with self.uow:
            history = [
                SessionHistoryEntry(
                    session_id=str(s.id),
                    device=s.user_agent,
                    ip_address=s.ip_address,
                    created_at=s.created_at,
                    last_used_at=s.last_used_at,
                    expires_at=s.expires_at,
                    revoked=s.revoked,
                    revoked_at=s.revoked_at,
                    revoked_reason=s.revoked_reason,
                )
                for s in await self.sessions.session_history(principal_id, limit)
            ]

        return Return.ok(history)

    @infrastructure_boundary
    async def revoke_session(
        self, principal_id: UUID, session_id: UUID
    ) -> Result[RevokeSessionsResponse]:
        """
        Returns:
            Result with RevokeSessionsResponse, or SESSION_NOT_FOUND / FORBIDDEN
        """
        async with self.uow:
            result = await self.sessions.revoke_session(principal_id, session_id)
            if result.is_err():
                if result.error.code == AuthErrorCode.FORBIDDEN.value:
                    logger.warning(
                        f"Principal {principal_id} tried to revoke foreign session {session_id}"
                    )
                    await self.events.record(
                        SecurityEventType.SESSION_REVOKE_DENIED,
                        success=False,
                        principal_id=str(principal_id),
                        session_id=str(session_id),
                    )
                return result
            await self.uow.commit()

        await self.events.record(
            SecurityEventType.SESSION_REVOKED,
            principal_id=str(principal_id),
            session_id=str(session_id),
        )
        return Return.ok(RevokeSessionsResponse(revoked_count=1))

    @infrastructure_boundary
    async def revoke_all_sessions(
        self,
        principal_id: UUID,
        current_session_id: Optional[UUID] = None,
        except_current: bool = True,
    ) -> Result[RevokeSessionsResponse]:
        """Log out everywhere, by default keeping the calling session"""
        keep = current_session_id if except_current else None
        async with self.uow:
            count = await self.sessions.revoke_all(principal_id, except_session_id=keep)
            await self.uow.commit()

        await self.events.record(
            SecurityEventType.SESSIONS_REVOKED,
            principal_id=str(principal_id),
            revoked_count=count,
            kept_session_id=str(keep) if keep else None,
        )
        return Return.ok(RevokeSessionsResponse(revoked_count=count))

    # ------------------------------------------------------------------
    # Two-factor management
    # ------------------------------------------------------------------

    @infrastructure_boundary
    async def setup_two_factor(self, principal_id: UUID) -> Result[TwoFactorSetupResponse]:
        async with self.uow:
            result = await self.two_factor.begin_enrollment(principal_id)
            if result.is_err():
                return result
            await self.uow.commit()

        await self.events.record(
            SecurityEventType.TWO_FACTOR_ENROLLMENT_STARTED, principal_id=str(principal_id)
        )
        setup = result.value
        return Return.ok(
            TwoFactorSetupResponse(secret=setup.secret, provisioning_uri=setup.provisioning_uri)
        )

    @infrastructure_boundary
    async def confirm_two_factor(
        self, principal_id: UUID, code: str
    ) -> Result[BackupCodesResponse]:
        async with self.uow:
            result = await self.two_factor.confirm_enrollment(principal_id, code)
            if result.is_ok():
                await self.uow.commit()

        if result.is_err():
            await self._record_denial(
                SecurityEventType.TWO_FACTOR_FAILED, result.error, principal_id
            )
            return result

        await self.events.record(
            SecurityEventType.TWO_FACTOR_ENABLED, principal_id=str(principal_id)
        )
        return Return.ok(BackupCodesResponse(backup_codes=result.value))

    @infrastructure_boundary
    async def disable_two_factor(
        self, principal_id: UUID, proof: str
    ) -> Result[TwoFactorStatusResponse]:
        """
        Returns:
            Result with the new (unenrolled) status, or FORBIDDEN when the proof
            is neither the password nor a valid code
        """
        async with self.uow:
            result = await self.two_factor.disable(principal_id, proof)
            if result.is_ok():
                await self.uow.commit()

        if result.is_err():
            await self._record_denial(
                SecurityEventType.TWO_FACTOR_DISABLE_DENIED, result.error, principal_id
            )
            return result

        await self.events.record(
            SecurityEventType.TWO_FACTOR_DISABLED,
            principal_id=str(principal_id),
            method=result.value,
        )
        return Return.ok(TwoFactorStatusResponse(state="unenrolled"))

    @infrastructure_boundary
    async def regenerate_backup_codes(
        self, principal_id: UUID, code: str
    ) -> Result[BackupCodesResponse]:
        async with self.uow:
            result = await self.two_factor.regenerate_backup_codes(principal_id, code)
            if result.is_ok():
                await self.uow.commit()

        if result.is_err():
            await self._record_denial(
                SecurityEventType.TWO_FACTOR_FAILED, result.error, principal_id
            )
            return result

        await self.events.record(
            SecurityEventType.BACKUP_CODES_REGENERATED, principal_id=str(principal_id)
        )
        return Return.ok(BackupCodesResponse(backup_codes=result.value))

    @infrastructure_boundary
    async def two_factor_status(self, principal_id: UUID) -> Result[TwoFactorStatusResponse]:
        async with self.uow:
            state = await self.two_factor.status(principal_id)

        return Return.ok(
            TwoFactorStatusResponse(
                state=state.state,
                enabled_at=state.enabled_at,
                remaining_backup_codes=state.remaining_backup_codes,
            )
        )

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def validate_password(
        self, password: str, email: Optional[str] = None
    ) -> Result[PasswordValidationResponse]:
        """Pure policy check. Input validation is never a security event."""
        validation = self.password_policy.validate(password, user_info=UserInfo(email=email))
        strength = self.password_policy.score(password)
        return Return.ok(
            PasswordValidationResponse(
                valid=validation.valid,
                violations=validation.violations,
                strength=PasswordStrengthResponse(
                    level=strength.level, score=strength.score, feedback=strength.feedback
                ),
            )
        )

    async def generate_password(self, length: int = 16) -> Result[GeneratedPasswordResponse]:
        try:
            password = self.password_policy.generate(length)
        except ValueError as exc:
            too_short = length < self.password_policy.policy.min_length
            return Return.err(
                auth_error(
                    AuthErrorCode.PASSWORD_POLICY_VIOLATION,
                    str(exc),
                    {
                        "violations": [
                            PasswordViolation.TOO_SHORT if too_short else PasswordViolation.TOO_LONG
                        ]
                    },
                )
            )
        return Return.ok(GeneratedPasswordResponse(password=password))

    @infrastructure_boundary
    async def change_password(
        self,
        principal_id: UUID,
        current_password: Optional[str],
        new_password: str,
        current_session_id: Optional[UUID] = None,
    ) -> Result[PasswordChangeResponse]:
        """
        Verify the current password, enforce policy and history, store the
        new hash and log out every other session.

        Principals provisioned through OAuth have no password yet and may set
        one without `current_password`.

        Returns:
            Result with PasswordChangeResponse, or INVALID_CREDENTIALS /
            PASSWORD_POLICY_VIOLATION / PRINCIPAL_NOT_FOUND / RATE_LIMITED
        """
        limited = await self._admit(
            f"password:{principal_id}",
            self.settings.login_account_limit,
            DeviceInfo(),
            principal_id=str(principal_id),
        )
        if limited is not None:
            return limited

        async with self.uow:
            principal = await self.uow.principals.get_by_id(principal_id)
            if principal is None:
                return Return.err(
                    auth_error(AuthErrorCode.PRINCIPAL_NOT_FOUND, "Principal not found")
                )

            if principal.password_hash and not verify_password(
                current_password or "", principal.password_hash
            ):
                await self._record(
                    SecurityEventType.PASSWORD_CHANGE_FAILED,
                    False,
                    principal,
                    None,
                    reason="bad_password",
                )
                return Return.err(
                    auth_error(AuthErrorCode.INVALID_CREDENTIALS, "Current password is incorrect")
                )

            history_size = self.settings.password_history_size
            history = await self.uow.password_history.list_recent(principal_id, history_size)
            known_hashes = [h.password_hash for h in history]
            if principal.password_hash:
                known_hashes.insert(0, principal.password_hash)

            validation = self.password_policy.validate(
                new_password, known_hashes, UserInfo(email=principal.email)
            )
            if not validation.valid:
                return Return.err(
                    auth_error(
                        AuthErrorCode.PASSWORD_POLICY_VIOLATION,
                        "Password does not meet the password policy",
                        {"violations": validation.violations},
                    )
                )

            now = self.clock.now()
            new_hash = hash_password(new_password, self.settings.bcrypt_rounds)
            await self.uow.principals.update_password_hash(principal_id, new_hash, now)
            await self.uow.password_history.append(
                PasswordHistory(principal_id=principal_id, password_hash=new_hash, created_at=now),
                keep=history_size,
            )
            revoked = await self.sessions.revoke_all(
                principal_id,
                except_session_id=current_session_id,
                reason=RevocationReason.password_changed,
            )
            await self.uow.commit()

        logger.info(f"Password changed for principal {principal_id}")
        await self._record(
            SecurityEventType.PASSWORD_CHANGED, True, principal, None, revoked_sessions=revoked
        )
        return Return.ok(PasswordChangeResponse(revoked_sessions=revoked))

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def oauth_providers(self) -> Result[OAuthProvidersResponse]:
        """Enabled providers; empty when OAuth is not wired on this deployment"""
        if self.oauth is None:
            return Return.ok(OAuthProvidersResponse(providers=[]))
        return Return.ok(
            OAuthProvidersResponse(
                providers=[
                    OAuthProviderInfo(name=config.name, scopes=list(config.scopes))
                    for config in self.oauth.available_providers()
                ]
            )
        )

    @infrastructure_boundary
    async def start_oauth(
        self,
        provider: str,
        tenant_hint: Optional[str] = None,
        principal_id: Optional[UUID] = None,
        device: Optional[DeviceInfo] = None,
    ) -> Result[OAuthStartResponse]:
        """
        Issue an authorization URL. With `principal_id` the flow links the
        provider to that principal instead of signing in.
        """
        if self.oauth is None:
            return Return.err(self._oauth_unavailable())
        device = device or DeviceInfo()
        limited = await self._admit_oauth(device)
        if limited is not None:
            return limited

        async with self.uow:
            result = await self.oauth.build_authorization_url(provider, tenant_hint, principal_id)
            if result.is_err():
                return result
            await self.uow.commit()

        await self.events.record(
            SecurityEventType.OAUTH_STARTED,
            provider=provider,
            principal_id=str(principal_id) if principal_id else None,
            ip_address=device.ip_address,
        )
        request = result.value
        return Return.ok(
            OAuthStartResponse(
                authorization_url=request.authorization_url,
                state=request.state,
                provider=request.provider,
            )
        )

    @infrastructure_boundary
    async def oauth_callback(
        self,
        provider: str,
        code: Optional[str],
        state: Optional[str],
        device: Optional[DeviceInfo] = None,
    ) -> Result[OAuthCallbackResponse]:
        """
        Complete an OAuth redirect. Continues exactly like a password login
        (active check, 2FA gate, session, tokens).

        Returns:
            Result with OAuthCallbackResponse, or STATE_MISMATCH / PROVIDER_ERROR /
            EMAIL_NOT_VERIFIED / ACCOUNT_LINK_REQUIRED / LINK_CONFLICT /
            UNSUPPORTED_PROVIDER / ACCOUNT_INACTIVE / RATE_LIMITED
        """
        if self.oauth is None:
            return Return.err(self._oauth_unavailable())
        device = device or DeviceInfo()
        limited = await self._admit_oauth(device)
        if limited is not None:
            return limited

        async with self.uow:
            consumed = await self.oauth.consume_state(provider, state)
            if consumed.is_ok():
                await self.uow.commit()
        if consumed.is_err():
            return await self._oauth_failed(provider, consumed.error, device)
        issued = consumed.value

        # No transaction is open while the provider is called
        exchanged = await self.oauth.exchange_code(provider, code)
        if exchanged.is_err():
            return await self._oauth_failed(provider, exchanged.error, device)

        async with self.uow:
            result = await self.oauth.resolve(issued, exchanged.value)
            if result.is_err():
                # Resolution fails before it writes anything
                return await self._oauth_failed(provider, result.error, device)

            resolution = result.value
            principal = resolution.principal

            if not resolution.signs_in:
                await self.uow.commit()
                await self._record(
                    SecurityEventType.OAUTH_LINKED, True, principal, device, provider=provider
                )
                return Return.ok(
                    OAuthCallbackResponse(
                        status=LINKED, provider=provider, tenant_hint=issued.tenant_hint
                    )
                )

            if not principal.is_active:
                await self.uow.commit()
                await self._record(
                    SecurityEventType.OAUTH_LOGIN_FAILED,
                    False,
                    principal,
                    device,
                    provider=provider,
                    reason="account_inactive",
                )
                return Return.err(
                    auth_error(AuthErrorCode.ACCOUNT_INACTIVE, "Account is not active")
                )

            if principal.two_factor_enabled:
                challenge = await self._issue_challenge(principal, device)
                await self.uow.commit()
                await self._record(
                    SecurityEventType.LOGIN_MFA_REQUIRED, True, principal, device, provider=provider
                )
                return Return.ok(
                    OAuthCallbackResponse(
                        status=MFA_REQUIRED,
                        challenge_id=challenge.challenge_id,
                        challenge_expires_at=challenge.challenge_expires_at,
                        provider=provider,
                        is_new_principal=resolution.is_new_principal,
                        tenant_hint=issued.tenant_hint,
                    )
                )

            tokens = await self._start_session(principal, device)
            await self.uow.commit()

        if resolution.is_new_principal:
            await self._record(
                SecurityEventType.OAUTH_PRINCIPAL_CREATED, True, principal, device, provider=provider
            )
        await self._record(
            SecurityEventType.OAUTH_LOGIN_SUCCEEDED,
            True,
            principal,
            device,
            provider=provider,
            session_id=tokens.session_id,
        )
        return Return.ok(
            OAuthCallbackResponse(
                status=AUTHENTICATED,
                tokens=tokens,
                provider=provider,
                is_new_principal=resolution.is_new_principal,
                tenant_hint=issued.tenant_hint,
            )
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @infrastructure_boundary
    async def list_security_events(
        self, principal_id: UUID, limit: int = 50, cursor: Optional[str] = None
    ) -> Result[SecurityEventsResponse]:
        """The principal's own audit trail, newest first"""
        async with self.uow:
            events, next_cursor = await self.uow.audit_events.get_by_principal_paginated(
                principal_id, limit=limit, cursor=cursor
            )
            items = [
                SecurityEventInfo(
                    action=event.action,
                    success=event.success,
                    timestamp=event.created_at.isoformat() + "Z",
                    metadata=event.event_metadata or {},
                )
                for event in events
            ]

        return Return.ok(SecurityEventsResponse(events=items, next_cursor=next_cursor))

    @infrastructure_boundary
    async def set_principal_active(
        self, principal_id: UUID, is_active: bool
    ) -> Result[PrincipalStatusResponse]:
        """Deactivation is the only way a principal goes away; it ends every session."""
        async with self.uow:
            if not await self.uow.principals.set_active(principal_id, is_active):
                return Return.err(
                    auth_error(AuthErrorCode.PRINCIPAL_NOT_FOUND, "Principal not found")
                )
            revoked = 0
            if not is_active:
                revoked = await self.sessions.revoke_all(
                    principal_id, reason=RevocationReason.deactivated
                )
            await self.uow.commit()

        event = (
            SecurityEventType.PRINCIPAL_ACTIVATED
            if is_active
            else SecurityEventType.PRINCIPAL_DEACTIVATED
        )
        await self.events.record(event, principal_id=str(principal_id), revoked_sessions=revoked)
        return Return.ok(
            PrincipalStatusResponse(
                principal_id=str(principal_id), is_active=is_active, revoked_sessions=revoked
            )
        )

    @infrastructure_boundary
    async def force_password_change(
        self, principal_id: UUID
    ) -> Result[PasswordChangeRequiredResponse]:
        """Require a new password; reported at every sign-in until the principal sets one"""
        async with self.uow:
            if not await self.uow.principals.require_password_change(principal_id):
                return Return.err(
                    auth_error(AuthErrorCode.PRINCIPAL_NOT_FOUND, "Principal not found")
                )
            await self.uow.commit()

        logger.info(f"Password change forced for principal {principal_id}")
        await self.events.record(
            SecurityEventType.PASSWORD_CHANGE_FORCED, principal_id=str(principal_id)
        )
        return Return.ok(PasswordChangeRequiredResponse(principal_id=str(principal_id)))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _start_session(self, principal: Principal, device: DeviceInfo) -> TokenPair:
        session = await self.sessions.create_session(principal.id, device)
        tokens = await self.tokens.issue_token_pair(principal, session)
        await self.uow.principals.touch_last_login(principal.id, self.clock.now())
        return tokens

    def _password_change_required(self, principal: Principal) -> bool:
        if not principal.password_hash:
            return False
        return principal.password_change_required or self.password_policy.is_password_expired(
            principal.password_changed_at, self.clock.now()
        )

    async def _issue_challenge(self, principal: Principal, device: DeviceInfo) -> LoginResponse:
        now = self.clock.now()
        challenge = await self.uow.login_challenges.create(
            LoginChallenge(
                principal_id=principal.id,
                user_agent=device.user_agent[:512] if device.user_agent else None,
                ip_address=device.ip_address,
                created_at=now,
                expires_at=now + self.settings.challenge_ttl,
            )
        )
        return LoginResponse(
            status=MFA_REQUIRED,
            challenge_id=str(challenge.id),
            challenge_expires_at=challenge.expires_at,
        )

    async def _admit(self, key: str, rule, device: DeviceInfo, **attributes) -> Optional[Result]:
        """None when admitted, otherwise the RATE_LIMITED result to return"""
        result = await admit(
            self.context.rate_limiter, key, rule.limit, rule.window_seconds, self.clock.now()
        )
        if result.is_ok():
            return None
        logger.warning(f"Rate limit exceeded for {key}")
        await self.events.record(
            SecurityEventType.RATE_LIMITED,
            success=False,
            key=key,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
            **attributes,
        )
        return result

    async def _admit_oauth(self, device: DeviceInfo) -> Optional[Result]:
        if not device.ip_address:
            return None
        return await self._admit(
            f"oauth:ip:{device.ip_address}", self.settings.oauth_limit, device
        )

    async def _oauth_failed(self, provider: str, error: Error, device: DeviceInfo) -> Result:
        logger.warning(f"OAuth callback for {provider} rejected: {error.code}")
        await self.events.record(
            SecurityEventType.OAUTH_LOGIN_FAILED,
            success=False,
            provider=provider,
            reason=error.code,
            ip_address=device.ip_address,
        )
        return Return.err(error)

    async def _login_failed(
        self,
        reason: str,
        device: DeviceInfo,
        email: str,
        principal: Optional[Principal] = None,
    ) -> Result:
        logger.warning(f"Login failed ({reason})")
        await self.events.record(
            SecurityEventType.LOGIN_FAILED,
            success=False,
            reason=reason,
            email=email,
            principal_id=str(principal.id) if principal else None,
            tenant_id=str(principal.tenant_id) if principal and principal.tenant_id else None,
            ip_address=device.ip_address,
            user_agent=device.user_agent,
        )
        return Return.err(auth_error(AuthErrorCode.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE))

    async def _record(
        self,
        event_type: str,
        success: bool,
        principal: Optional[Principal],
        device: Optional[DeviceInfo],
        **attributes,
    ) -> None:
        await self.events.record(
            event_type,
            success=success,
            principal_id=str(principal.id) if principal else None,
            tenant_id=str(principal.tenant_id) if principal and principal.tenant_id else None,
            ip_address=device.ip_address if device else None,
            user_agent=device.user_agent if device else None,
            **attributes,
        )

    async def _record_denial(
        self,
        event_type: str,
        error: Error,
        principal_id: UUID,
        tenant_id: Optional[UUID] = None,
        device: Optional[DeviceInfo] = None,
    ) -> None:
        """Takes ids rather than rows: it runs after the unit of work rolled back"""
        if error.code == AuthErrorCode.RATE_LIMITED.value:
            event_type = SecurityEventType.RATE_LIMITED
        await self.events.record(
            event_type,
            success=False,
            principal_id=str(principal_id),
            tenant_id=str(tenant_id) if tenant_id else None,
            ip_address=device.ip_address if device else None,
            user_agent=device.user_agent if device else None,
            reason=error.code,
        )

    @staticmethod
    def _oauth_unavailable() -> Error:
        return auth_error(
            AuthErrorCode.NOT_IMPLEMENTED, "OAuth sign-in is not available on this deployment"
        )
