"""
SecurityEventSink implementations.

The logging sink writes to the "security" logger; the audit-trail sink
persists rows in audit_events through its own session so events survive a
rolled-back request.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from src.adapter.repositories.audit_event_repository import AuditEventRepository
from src.app.services.clock import Clock
from src.app.services.security_events import SecurityEventSink
from src.domain.entities import AuditEvent

security_logger = logging.getLogger("security")

logger = logging.getLogger(__name__)


class LoggingSecurityEventSink(SecurityEventSink):
    async def record(self, event_type: str, attributes: Dict[str, Any]) -> None:
        level = logging.INFO if attributes.get("success", True) else logging.WARNING
        details = " ".join(f"{k}={v}" for k, v in sorted(attributes.items()))
        security_logger.log(level, f"{event_type} {details}")


class AuditTrailSecurityEventSink(SecurityEventSink):
    def __init__(self, session_factory, clock: Clock):
        self.session_factory = session_factory
        self.clock = clock

    async def record(self, event_type: str, attributes: Dict[str, Any]) -> None:
        metadata = dict(attributes)
        success = bool(metadata.pop("success", True))
        principal_id = _as_uuid(metadata.pop("principal_id", None))
        tenant_id = _as_uuid(metadata.pop("tenant_id", None))

        async with self.session_factory() as session:
            await AuditEventRepository(session).create(
                AuditEvent(
                    tenant_id=tenant_id,
                    principal_id=principal_id,
                    action=event_type,
                    success=success,
                    event_metadata={k: _jsonable(v) for k, v in metadata.items()},
                    created_at=self.clock.now(),
                )
            )
            await session.commit()


class CompositeSecurityEventSink(SecurityEventSink):
    """Fans out to every sink; one failing sink does not starve the others"""

    def __init__(self, sinks: List[SecurityEventSink]):
        self.sinks = sinks

    async def record(self, event_type: str, attributes: Dict[str, Any]) -> None:
        for sink in self.sinks:
            try:
                await sink.record(event_type, attributes)
            except Exception:
                logger.exception(f"{type(sink).__name__} failed to record {event_type}")


def _as_uuid(value: Any) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
