"""Audit recorder — builds write-once audit entries and hands them to the sink."""

import logging
from typing import Any

from quotedesk.interfaces import AuditSink
from quotedesk.schemas.audit import AuditLogEntry, EntityType
from quotedesk.schemas.common import Actor

logger = logging.getLogger(__name__)


class AuditRecorder:
    def __init__(self, sink: AuditSink):
        self.sink = sink

    async def record(
        self,
        entity_type: EntityType,
        entity_id: str,
        action: str,
        actor: Actor,
        description: str = "",
        previous_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor.id,
            actor_role=actor.role,
            actor_name=actor.name,
            description=description,
            previous_value=previous_value,
            new_value=new_value,
        )
        await self.sink.record(entry)
        logger.debug(f"[AUDIT] {action} on {entity_type.value} {entity_id} by {actor.name}")
        return entry
