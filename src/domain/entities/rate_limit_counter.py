"""
RateLimitCounter Entity

Fixed-window counter for the database rate-limiter backend.
"""

from datetime import datetime

from sqlmodel import Column, DateTime, Field, SQLModel


class RateLimitCounter(SQLModel, table=True):
    __tablename__ = "rate_limit_counters"

    key: str = Field(primary_key=True, max_length=255)
    count: int = Field(default=0)
    reset_at: datetime = Field(sa_column=Column(DateTime, nullable=False))
