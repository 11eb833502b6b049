"""In-process adapters for tests and local runs without a database."""

import logging
from typing import Callable

from quotedesk.errors import ConcurrentModification
from quotedesk.interfaces import AuditSink, Notifier, Repository, T
from quotedesk.schemas.audit import AuditLogEntry

logger = logging.getLogger(__name__)


class InMemoryRepository(Repository[T]):
    """Dict-backed repository. Stored and returned entities are deep copies."""

    def __init__(self, kind: str):
        self.kind = kind
        self._items: dict[str, T] = {}

    async def get(self, id: str) -> T | None:
        item = self._items.get(id)
        return item.model_copy(deep=True) if item is not None else None

    async def save(self, entity: T, expected_version: int | None) -> T:
        stored = self._items.get(entity.id)
        if expected_version is None:
            if stored is not None:
                raise ConcurrentModification(
                    f"{self.kind} {entity.id} already exists",
                    entity_id=entity.id,
                )
            new_version = 1
        else:
            if stored is None or stored.row_version != expected_version:
                raise ConcurrentModification(
                    f"{self.kind} {entity.id} was modified concurrently",
                    entity_id=entity.id,
                    expected_version=expected_version,
                    current_version=stored.row_version if stored else None,
                )
            new_version = expected_version + 1

        saved = entity.model_copy(update={"row_version": new_version}, deep=True)
        self._items[entity.id] = saved
        return saved.model_copy(deep=True)

    async def query(self, predicate: Callable[[T], bool]) -> list[T]:
        return [item.model_copy(deep=True) for item in self._items.values() if predicate(item)]


class InMemoryAuditSink(AuditSink):
    def __init__(self):
        self.entries: list[AuditLogEntry] = []

    async def record(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)

    def for_entity(self, entity_id: str) -> list[AuditLogEntry]:
        return [e for e in self.entries if e.entity_id == entity_id]


class InMemoryNotifier(Notifier):
    """Keeps notifications in a per-user inbox."""

    def __init__(self):
        self.sent: list[dict] = []

    async def notify(
        self, recipient_ids: list[str], title: str, body: str, link: str | None = None
    ) -> None:
        for recipient in recipient_ids:
            self.sent.append({"user_id": recipient, "title": title, "body": body, "link": link})
        logger.debug(f"Notification '{title}' queued for {len(recipient_ids)} recipient(s)")

    def inbox(self, user_id: str) -> list[dict]:
        return [n for n in self.sent if n["user_id"] == user_id]
