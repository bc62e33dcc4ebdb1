import base64
import binascii
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.repositories.audit_event_repository import IAuditEventRepository
from src.domain.entities import AuditEvent


def encode_cursor(event: AuditEvent) -> str:
    raw = f"{event.created_at.isoformat()}|{event.id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Optional[Tuple[datetime, UUID]]:
    """(created_at, id) of the last event on the previous page; None when unreadable"""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        created_at, event_id = raw.split("|", 1)
        return datetime.fromisoformat(created_at), UUID(event_id)
    except (ValueError, UnicodeError, binascii.Error):
        return None


class AuditEventRepository(IAuditEventRepository):
    """Append-only store behind the audit-trail sink"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, audit_event: AuditEvent) -> AuditEvent:
        self.session.add(audit_event)
        await self.session.flush()
        return audit_event

    async def get_by_principal_paginated(
        self, principal_id: UUID, limit: int = 50, cursor: Optional[str] = None
    ) -> Tuple[List[AuditEvent], Optional[str]]:
        """
        Keyset pagination over (created_at, id), newest first.

        Events sharing a timestamp are split deterministically by id, so a
        page boundary never skips or repeats one. An unreadable cursor starts
        from the newest event.
        """
        stmt = select(AuditEvent).where(AuditEvent.principal_id == principal_id)

        position = decode_cursor(cursor) if cursor else None
        if position is not None:
            created_at, event_id = position
            stmt = stmt.where(
                or_(
                    AuditEvent.created_at < created_at,
                    and_(AuditEvent.created_at == created_at, AuditEvent.id < event_id),
                )
            )

        stmt = stmt.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit + 1)
        result = await self.session.exec(stmt)
        events = list(result.all())

        if len(events) <= limit:
            return events, None
        events = events[:limit]
        return events, encode_cursor(events[-1])
