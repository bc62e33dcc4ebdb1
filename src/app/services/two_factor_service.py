"""
Two-Factor Service

TOTP enrollment state machine and single-use backup codes.

    unenrolled -> pending -> enrolled -> unenrolled
"""

import hashlib
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from src.api.utils.jwt import to_timestamp
from src.app.errors import AuthErrorCode, auth_error
from src.app.services import totp
from src.app.services.clock import Clock
from src.app.services.passwords import verify_password
from src.app.services.rate_limiter import RateLimiter, admit
from src.app.services.settings import AuthSettings
from src.app.services.unit_of_work import UnitOfWork
from src.domain.entities import TwoFactorEnrollment, TwoFactorStatus
from src.libs.result import Result, Return

logger = logging.getLogger(__name__)

BACKUP_CODE_LENGTH = 8
BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits

UNENROLLED = "unenrolled"


class VerificationMethod:
    TOTP = "totp"
    BACKUP_CODE = "backup_code"
    PASSWORD = "password"


@dataclass(frozen=True)
class TwoFactorSetup:
    secret: str
    provisioning_uri: str


@dataclass(frozen=True)
class TwoFactorState:
    state: str
    enabled_at: Optional[datetime]
    remaining_backup_codes: int


def generate_backup_codes(count: int) -> List[str]:
    return [
        "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
        for _ in range(count)
    ]


def normalize_backup_code(code: str) -> str:
    return code.strip().upper().replace("-", "").replace(" ", "")


def hash_backup_code(code: str) -> str:
    return hashlib.sha256(normalize_backup_code(code).encode()).hexdigest()


class TwoFactorService:
    """
    Two-factor authentication.

    Business Rules:
    - A pending secret never gates login; only an enrolled one does
    - TOTP codes are accepted within +/- one 30s step, each step at most once
    - Backup codes are shown once (at confirmation/regeneration), stored hashed
      and consumed by a conditional update so exactly one caller wins
    - Every code evaluation is rate limited per principal first
    - Runs inside the caller's unit of work; the caller commits
    """

    def __init__(
        self,
        uow: UnitOfWork,
        settings: AuthSettings,
        clock: Clock,
        rate_limiter: RateLimiter,
    ):
        self.uow = uow
        self.settings = settings
        self.clock = clock
        self.rate_limiter = rate_limiter

    async def begin_enrollment(self, principal_id: UUID) -> Result[TwoFactorSetup]:
        """
        Generate a fresh pending secret (replacing any earlier pending one).

        Returns:
            Result with TwoFactorSetup, or ALREADY_ENROLLED / PRINCIPAL_NOT_FOUND
        """
        principal = await self.uow.principals.get_by_id(principal_id)
        if principal is None:
            return Return.err(
                auth_error(AuthErrorCode.PRINCIPAL_NOT_FOUND, "Principal not found")
            )

        existing = await self.uow.two_factor.get_enrollment(principal_id)
        if existing is not None and existing.status == TwoFactorStatus.enrolled:
            return Return.err(
                auth_error(AuthErrorCode.ALREADY_ENROLLED, "Two-factor is already enabled")
            )

        secret = totp.generate_secret()
        await self.uow.two_factor.save_enrollment(
            TwoFactorEnrollment(
                principal_id=principal_id,
                secret=secret,
                status=TwoFactorStatus.pending,
                created_at=self.clock.now(),
            )
        )
        uri = totp.provisioning_uri(secret, principal.email, self.settings.totp_issuer)
        return Return.ok(TwoFactorSetup(secret=secret, provisioning_uri=uri))

    async def confirm_enrollment(self, principal_id: UUID, code: str) -> Result[List[str]]:
        """
        Confirm the pending secret with a live code.

        Returns:
            Result with the plaintext backup codes (the only time they are
            shown), or RATE_LIMITED / NO_ENROLLMENT / ALREADY_ENROLLED / INVALID_CODE
        """
        admitted = await self._admit(principal_id)
        if admitted.is_err():
            return admitted

        enrollment = await self.uow.two_factor.get_enrollment(principal_id)
        if enrollment is None:
            return Return.err(
                auth_error(AuthErrorCode.NO_ENROLLMENT, "Two-factor setup has not been started")
            )
        if enrollment.status == TwoFactorStatus.enrolled:
            return Return.err(
                auth_error(AuthErrorCode.ALREADY_ENROLLED, "Two-factor is already enabled")
            )

        if not await self._accept_totp(enrollment, code):
            return Return.err(auth_error(AuthErrorCode.INVALID_CODE, "Invalid code"))

        now = self.clock.now()
        enrollment.status = TwoFactorStatus.enrolled
        enrollment.enabled_at = now
        await self.uow.two_factor.save_enrollment(enrollment)
        await self.uow.principals.set_two_factor_state(principal_id, True)

        codes = await self._issue_backup_codes(principal_id)
        logger.info(f"Two-factor enabled for principal {principal_id}")
        return Return.ok(codes)

    async def verify_login(self, principal_id: UUID, code: str) -> Result[str]:
        """
        Second factor at login: a live TOTP code or an unused backup code.

        Returns:
            Result with the VerificationMethod used, or RATE_LIMITED /
            NO_ENROLLMENT / INVALID_CODE
        """
        admitted = await self._admit(principal_id)
        if admitted.is_err():
            return admitted

        enrollment = await self.uow.two_factor.get_enrollment(principal_id)
        if enrollment is None or enrollment.status != TwoFactorStatus.enrolled:
            return Return.err(
                auth_error(AuthErrorCode.NO_ENROLLMENT, "Two-factor is not enabled")
            )

        method = await self._verify_code(enrollment, code)
        if method is None:
            return Return.err(auth_error(AuthErrorCode.INVALID_CODE, "Invalid code"))
        return Return.ok(method)

    async def disable(self, principal_id: UUID, proof: str) -> Result[str]:
        """
        Clear the enrollment after re-proof of possession.

        `proof` is the current password, a live TOTP code or a backup code.

        Returns:
            Result with the VerificationMethod that proved possession, or
            RATE_LIMITED / NO_ENROLLMENT / FORBIDDEN
        """
        admitted = await self._admit(principal_id)
        if admitted.is_err():
            return admitted

        enrollment = await self.uow.two_factor.get_enrollment(principal_id)
        if enrollment is None:
            return Return.err(
                auth_error(AuthErrorCode.NO_ENROLLMENT, "Two-factor is not enabled")
            )

        method = None
        principal = await self.uow.principals.get_by_id(principal_id)
        if principal is not None and principal.password_hash and verify_password(
            proof, principal.password_hash
        ):
            method = VerificationMethod.PASSWORD
        elif enrollment.status == TwoFactorStatus.enrolled:
            method = await self._verify_code(enrollment, proof)

        if method is None:
            return Return.err(
                auth_error(
                    AuthErrorCode.FORBIDDEN,
                    "Password or a valid two-factor code is required",
                )
            )

        await self.uow.two_factor.delete_enrollment(principal_id)
        await self.uow.principals.set_two_factor_state(principal_id, False)
        logger.info(f"Two-factor disabled for principal {principal_id}")
        return Return.ok(method)

    async def regenerate_backup_codes(self, principal_id: UUID, code: str) -> Result[List[str]]:
        """Replace all backup codes; requires a live TOTP code"""
        admitted = await self._admit(principal_id)
        if admitted.is_err():
            return admitted

        enrollment = await self.uow.two_factor.get_enrollment(principal_id)
        if enrollment is None or enrollment.status != TwoFactorStatus.enrolled:
            return Return.err(
                auth_error(AuthErrorCode.NO_ENROLLMENT, "Two-factor is not enabled")
            )

        if not await self._accept_totp(enrollment, code):
            return Return.err(auth_error(AuthErrorCode.INVALID_CODE, "Invalid code"))

        return Return.ok(await self._issue_backup_codes(principal_id))

    async def status(self, principal_id: UUID) -> TwoFactorState:
        enrollment = await self.uow.two_factor.get_enrollment(principal_id)
        if enrollment is None:
            return TwoFactorState(state=UNENROLLED, enabled_at=None, remaining_backup_codes=0)

        remaining = 0
        if enrollment.status == TwoFactorStatus.enrolled:
            remaining = await self.uow.two_factor.count_unused_backup_codes(principal_id)
        return TwoFactorState(
            state=TwoFactorStatus(enrollment.status).value,
            enabled_at=enrollment.enabled_at,
            remaining_backup_codes=remaining,
        )

    async def _admit(self, principal_id: UUID) -> Result:
        rule = self.settings.two_factor_limit
        return await admit(
            self.rate_limiter,
            f"2fa:{principal_id}",
            rule.limit,
            rule.window_seconds,
            self.clock.now(),
        )

    async def _verify_code(
        self, enrollment: TwoFactorEnrollment, code: str
    ) -> Optional[str]:
        if await self._accept_totp(enrollment, code):
            return VerificationMethod.TOTP

        consumed = await self.uow.two_factor.consume_backup_code(
            enrollment.principal_id, hash_backup_code(code), self.clock.now()
        )
        if consumed:
            logger.info(f"Backup code consumed for principal {enrollment.principal_id}")
            return VerificationMethod.BACKUP_CODE
        return None

    async def _accept_totp(self, enrollment: TwoFactorEnrollment, code: str) -> bool:
        step = totp.match_step(enrollment.secret, code, to_timestamp(self.clock.now()))
        if step is None:
            return False
        # Replay of an already accepted step loses the conditional update
        return await self.uow.two_factor.advance_last_used_step(enrollment.principal_id, step)

    async def _issue_backup_codes(self, principal_id: UUID) -> List[str]:
        codes = generate_backup_codes(self.settings.backup_code_count)
        await self.uow.two_factor.replace_backup_codes(
            principal_id, [hash_backup_code(c) for c in codes]
        )
        return codes
