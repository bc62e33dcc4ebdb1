"""
Two-Factor Entities

TOTP enrollment and single-use backup codes.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, SQLModel

from .enums import TwoFactorStatus


class TwoFactorEnrollment(SQLModel, table=True):
    """
    TwoFactorEnrollment entity - one row per principal while pending or enrolled.

    Business Rules:
    - secret is base32 and never returned after setup
    - pending secrets do not gate login; only enrolled ones do
    - last_used_step prevents replaying the same TOTP code
    """

    __tablename__ = "two_factor_enrollments"

    principal_id: UUID = Field(foreign_key="principals.id", primary_key=True)
    secret: str = Field(max_length=64)
    status: TwoFactorStatus = Field(default=TwoFactorStatus.pending)
    last_used_step: Optional[int] = Field(default=None)

    # Timestamps
    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )
    enabled_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))


class BackupCode(SQLModel, table=True):
    """Backup code - SHA-256 hashed, consumable exactly once"""

    __tablename__ = "two_factor_backup_codes"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    principal_id: UUID = Field(foreign_key="principals.id", nullable=False, index=True)
    code_hash: str = Field(max_length=64)
    used_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))

    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )

    __table_args__ = (Index("idx_backup_code_principal_hash", "principal_id", "code_hash"),)
