"""
RefreshToken Entity

Server-side record of an issued refresh token.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, SQLModel


class RefreshToken(SQLModel, table=True):
    """
    RefreshToken entity - makes the signed refresh token revocable.

    Business Rules:
    - id is the token's jti claim
    - A token validates only while not revoked, not expired and its session lives
    - Rotation marks the old row revoked and sets replaced_by_id
    - A revoked row with replaced_by_id presented again means token reuse
    """

    __tablename__ = "refresh_tokens"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    principal_id: UUID = Field(foreign_key="principals.id", nullable=False, index=True)
    session_id: UUID = Field(foreign_key="sessions.id", nullable=False, index=True)

    revoked: bool = Field(default=False)
    revoked_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
    replaced_by_id: Optional[UUID] = Field(default=None)

    # Timestamps
    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )
    expires_at: datetime = Field(sa_column=Column(DateTime))

    __table_args__ = (Index("idx_refresh_token_expires_at", "expires_at"),)
