"""
Session Entity

One authenticated device/browser context.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, SQLModel


class Session(SQLModel, table=True):
    """
    Session entity - one login context bound to its current refresh token.

    Business Rules:
    - refresh_token_id points at the live refresh token (1:1), rotated on refresh
    - last_used_at is touched on every successful refresh
    - Revoked sessions are kept (revoked=True) for the audit trail
    """

    __tablename__ = "sessions"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    principal_id: UUID = Field(foreign_key="principals.id", nullable=False, index=True)
    refresh_token_id: Optional[UUID] = Field(default=None, index=True)

    user_agent: Optional[str] = Field(default=None, max_length=512)
    ip_address: Optional[str] = Field(default=None, max_length=64)

    revoked: bool = Field(default=False)
    revoked_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    revoked_reason: Optional[str] = Field(default=None, max_length=50)

    # Timestamps
    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )
    last_used_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )
    expires_at: datetime = Field(sa_column=Column(DateTime))

    __table_args__ = (
        Index("idx_session_expires_at", "expires_at"),
        Index("idx_session_principal_revoked", "principal_id", "revoked"),
    )
