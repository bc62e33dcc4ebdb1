"""
Principal Entity

A tenant-scoped user identity that can authenticate.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, SQLModel


class Principal(SQLModel, table=True):
    """
    Principal entity - an authenticated identity scoped to a tenant.

    Business Rules:
    - Email is unique and stored lower-cased
    - tenant_id is null for platform admins
    - Password stored as bcrypt hash; null for OAuth-provisioned principals
    - password_change_required is reported at sign-in until a new password is set
    - Never physically deleted (deactivation only)
    """

    __tablename__ = "principals"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(unique=True, index=True, max_length=255)
    tenant_id: Optional[UUID] = Field(default=None, index=True)

    is_admin: bool = Field(default=False)
    is_active: bool = Field(default=True)

    password_hash: Optional[str] = Field(default=None, max_length=60)  # Bcrypt output
    password_changed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime)
    )
    # Set by an administrator; cleared by the next password change
    password_change_required: bool = Field(default=False)

    two_factor_enabled: bool = Field(default=False)

    # Timestamps
    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )
    last_login_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
