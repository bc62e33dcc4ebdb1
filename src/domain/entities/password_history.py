"""
PasswordHistory Entity

Prior password hashes, used to reject reuse.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, SQLModel


class PasswordHistory(SQLModel, table=True):
    """Append-only; entries beyond the configured bound are evicted oldest-first"""

    __tablename__ = "password_history"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    principal_id: UUID = Field(foreign_key="principals.id", nullable=False)
    password_hash: str = Field(max_length=60)

    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )

    __table_args__ = (Index("idx_password_history_principal", "principal_id", "created_at"),)
