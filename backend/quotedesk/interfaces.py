"""Narrow interfaces to the engine's external collaborators.

Implementations live in `quotedesk.repositories` and `quotedesk.services`;
tests supply in-memory fakes.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable, Generic, TypeVar

from quotedesk.schemas.audit import AuditLogEntry
from quotedesk.schemas.common import Record

T = TypeVar("T", bound=Record)


class Repository(ABC, Generic[T]):
    """Entity store with compare-and-swap writes.

    `save` with `expected_version=None` creates a new entity; otherwise the
    stored `row_version` must equal `expected_version` or the write fails with
    `ConcurrentModification`. The returned entity carries the new row_version.
    """

    @abstractmethod
    async def get(self, id: str) -> T | None:
        ...

    @abstractmethod
    async def save(self, entity: T, expected_version: int | None) -> T:
        ...

    @abstractmethod
    async def query(self, predicate: Callable[[T], bool]) -> list[T]:
        ...


class CurrencyRateProvider(ABC):
    @abstractmethod
    def rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Units of `to_currency` per one unit of `from_currency`."""


class PaymentVerifier(ABC):
    @abstractmethod
    async def verify(self, payment_id: str, expected_amount: Decimal, currency: str) -> bool:
        ...


class Notifier(ABC):
    @abstractmethod
    async def notify(
        self, recipient_ids: list[str], title: str, body: str, link: str | None = None
    ) -> None:
        ...


class AuditSink(ABC):
    @abstractmethod
    async def record(self, entry: AuditLogEntry) -> None:
        ...
