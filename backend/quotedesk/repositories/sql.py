"""SQLAlchemy adapters. Entities are stored as JSON documents keyed by (kind, id)."""

import logging
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quotedesk.errors import ConcurrentModification
from quotedesk.interfaces import AuditSink, Notifier, Repository, T
from quotedesk.models import AuditLogRecord, DocumentRecord, Notification
from quotedesk.schemas.audit import AuditLogEntry

logger = logging.getLogger(__name__)


class SqlRepository(Repository[T]):
    """Document repository with compare-and-swap on the `row_version` column."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], kind: str, model: type[T]):
        self.session_factory = session_factory
        self.kind = kind
        self.model = model

    def _load(self, row: DocumentRecord) -> T:
        return self.model.model_validate({**row.data, "row_version": row.row_version})

    def _dump(self, entity: T) -> dict:
        return entity.model_dump(mode="json", exclude={"row_version"})

    async def get(self, id: str) -> T | None:
        async with self.session_factory() as db:
            row = await db.get(DocumentRecord, (self.kind, id))
            return self._load(row) if row is not None else None

    async def save(self, entity: T, expected_version: int | None) -> T:
        async with self.session_factory() as db:
            if expected_version is None:
                db.add(DocumentRecord(kind=self.kind, id=entity.id, row_version=1, data=self._dump(entity)))
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    raise ConcurrentModification(
                        f"{self.kind} {entity.id} already exists",
                        entity_id=entity.id,
                    )
                return entity.model_copy(update={"row_version": 1})

            new_version = expected_version + 1
            result = await db.execute(
                update(DocumentRecord)
                .where(
                    DocumentRecord.kind == self.kind,
                    DocumentRecord.id == entity.id,
                    DocumentRecord.row_version == expected_version,
                )
                .values(row_version=new_version, data=self._dump(entity))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                raise ConcurrentModification(
                    f"{self.kind} {entity.id} was modified concurrently",
                    entity_id=entity.id,
                    expected_version=expected_version,
                )
            await db.commit()
            return entity.model_copy(update={"row_version": new_version})

    async def query(self, predicate: Callable[[T], bool]) -> list[T]:
        async with self.session_factory() as db:
            result = await db.execute(select(DocumentRecord).where(DocumentRecord.kind == self.kind))
            entities = [self._load(row) for row in result.scalars().all()]
        return [e for e in entities if predicate(e)]


class SqlAuditSink(AuditSink):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(self, entry: AuditLogEntry) -> None:
        data = entry.model_dump(mode="json")
        async with self.session_factory() as db:
            db.add(AuditLogRecord(
                id=entry.id,
                entity_type=data["entity_type"],
                entity_id=entry.entity_id,
                action=entry.action,
                actor_id=entry.actor_id,
                actor_role=data["actor_role"],
                actor_name=entry.actor_name,
                description=entry.description,
                previous_value=data["previous_value"],
                new_value=data["new_value"],
                timestamp=entry.timestamp,
            ))
            await db.commit()

    async def for_entity(self, entity_id: str) -> list[AuditLogEntry]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(AuditLogRecord)
                .where(AuditLogRecord.entity_id == entity_id)
                .order_by(AuditLogRecord.timestamp)
            )
            return [
                AuditLogEntry(
                    id=row.id,
                    entity_type=row.entity_type,
                    entity_id=row.entity_id,
                    action=row.action,
                    actor_id=row.actor_id,
                    actor_role=row.actor_role,
                    actor_name=row.actor_name,
                    description=row.description or "",
                    previous_value=row.previous_value,
                    new_value=row.new_value,
                    timestamp=row.timestamp,
                )
                for row in result.scalars().all()
            ]


class SqlNotifier(Notifier):
    """Writes one in-app notification row per recipient."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def notify(
        self, recipient_ids: list[str], title: str, body: str, link: str | None = None
    ) -> None:
        async with self.session_factory() as db:
            for recipient in recipient_ids:
                db.add(Notification(user_id=recipient, title=title, body=body, link=link))
            await db.commit()
        logger.info(f"Notification '{title}' sent to {len(recipient_ids)} recipient(s)")
