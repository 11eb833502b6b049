from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

import quotedesk.models  # noqa: F401
from quotedesk.database import Base, build_session_factory
from quotedesk.errors import ConcurrentModification
from quotedesk.models import Notification
from quotedesk.repositories.sql import SqlAuditSink, SqlNotifier, SqlRepository
from quotedesk.schemas.audit import AuditLogEntry, EntityType
from quotedesk.schemas.booking import Booking
from quotedesk.schemas.common import Role
from quotedesk.schemas.quote import Quote

from conftest import make_itinerary


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


def _quote(**overrides) -> Quote:
    fields = dict(
        id="q_qt-1_v1", unique_ref_no="QT-1", agent_id="agent_1", agent_name="Priya Travels",
        currency="INR", itinerary=make_itinerary("1000"), selling_price=Decimal("1200.50"),
    )
    fields.update(overrides)
    return Quote(**fields)


async def test_document_round_trip(session_factory):
    repo = SqlRepository(session_factory, "quote", Quote)
    saved = await repo.save(_quote(), expected_version=None)
    assert saved.row_version == 1

    loaded = await repo.get(saved.id)
    assert loaded.row_version == 1
    assert loaded.selling_price == Decimal("1200.50")
    assert loaded.itinerary == saved.itinerary


async def test_compare_and_swap(session_factory):
    repo = SqlRepository(session_factory, "quote", Quote)
    saved = await repo.save(_quote(), expected_version=None)

    first = await repo.save(saved.model_copy(update={"destination": "Muscat"}), expected_version=1)
    assert first.row_version == 2
    with pytest.raises(ConcurrentModification):
        await repo.save(saved.model_copy(update={"destination": "Doha"}), expected_version=1)
    with pytest.raises(ConcurrentModification):
        await repo.save(_quote(), expected_version=None)

    assert (await repo.get(saved.id)).destination == "Muscat"


async def test_kinds_are_separate(session_factory):
    quotes = SqlRepository(session_factory, "quote", Quote)
    bookings = SqlRepository(session_factory, "booking", Booking)
    await quotes.save(_quote(), expected_version=None)
    await quotes.save(_quote(id="q_qt-1_v2", version=2), expected_version=None)

    assert await bookings.get("q_qt-1_v1") is None
    lineage = await quotes.query(lambda q: q.unique_ref_no == "QT-1")
    assert sorted(q.version for q in lineage) == [1, 2]


async def test_booking_computed_fields_survive_storage(session_factory):
    repo = SqlRepository(session_factory, "booking", Booking)
    booking = Booking(
        id="bk_1", quote_id="q", unique_ref_no="QT-1", currency="INR", agent_id="a", agent_name="A",
        company_id="c", total_amount=Decimal("1000"), advance_amount=Decimal("300"),
    )
    await repo.save(booking, expected_version=None)
    loaded = await repo.get("bk_1")
    assert loaded.balance_amount == Decimal("1000")


async def test_audit_sink_persists_entries(session_factory):
    sink = SqlAuditSink(session_factory)
    entry = AuditLogEntry(
        entity_type=EntityType.QUOTE, entity_id="q1", action="QUOTE_APPROVED",
        actor_id="staff_1", actor_role=Role.STAFF, actor_name="Sam",
        previous_value={"status": "SUBMITTED"}, new_value={"status": "APPROVED"},
    )
    await sink.record(entry)

    stored = await sink.for_entity("q1")
    assert len(stored) == 1
    assert stored[0].action == "QUOTE_APPROVED"
    assert stored[0].new_value == {"status": "APPROVED"}


async def test_notifier_writes_one_row_per_recipient(session_factory):
    await SqlNotifier(session_factory).notify(["agent_1", "staff_1"], "Quote Approved", "QT-1 approved", "/quotes/q1")
    async with session_factory() as db:
        rows = (await db.execute(select(Notification))).scalars().all()
    assert sorted(r.user_id for r in rows) == ["agent_1", "staff_1"]
    assert all(r.link == "/quotes/q1" for r in rows)
