"""
LoginChallenge Entity

"Password verified, awaiting second factor."
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, SQLModel


class LoginChallenge(SQLModel, table=True):
    """
    LoginChallenge entity - short-lived handle issued instead of tokens.

    Business Rules:
    - Expires quickly (5 minutes by default)
    - Single-use: consumed_at is set exactly once
    """

    __tablename__ = "login_challenges"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    principal_id: UUID = Field(foreign_key="principals.id", nullable=False, index=True)

    user_agent: Optional[str] = Field(default=None, max_length=512)
    ip_address: Optional[str] = Field(default=None, max_length=64)

    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )
    expires_at: datetime = Field(sa_column=Column(DateTime))
    consumed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
