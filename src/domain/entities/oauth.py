"""
OAuth Entities

Provider identity links and pending authorization states.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, SQLModel, UniqueConstraint


class OAuthLink(SQLModel, table=True):
    """
    OAuthLink entity - maps (provider, provider_user_id) to a principal.

    Business Rules:
    - At most one principal per (provider, provider_user_id)
    - A principal may be linked to several providers
    """

    __tablename__ = "oauth_links"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    provider: str = Field(max_length=50)
    provider_user_id: str = Field(max_length=255)
    principal_id: UUID = Field(foreign_key="principals.id", nullable=False, index=True)
    email: Optional[str] = Field(default=None, max_length=255)

    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_oauth_provider_user"),
    )


class OAuthState(SQLModel, table=True):
    """
    OAuthState entity - CSRF state issued with an authorization URL.

    Business Rules:
    - Consumed exactly once by the matching provider callback
    - principal_id is set when an authenticated principal links a provider
    """

    __tablename__ = "oauth_states"

    state: str = Field(primary_key=True, max_length=128)
    provider: str = Field(max_length=50)
    tenant_hint: Optional[str] = Field(default=None, max_length=255)
    principal_id: Optional[UUID] = Field(default=None)

    created_at: datetime = Field(
        default_factory=lambda: datetime.utcnow(), sa_column=Column(DateTime)
    )
    expires_at: datetime = Field(sa_column=Column(DateTime))
    consumed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime))
