from decimal import Decimal

import pytest

from quotedesk.errors import ConcurrentModification, InvalidStateTransition
from quotedesk.repositories.memory import InMemoryRepository
from quotedesk.schemas.booking import Booking, BookingStatus, PaymentStatus, Traveler
from quotedesk.schemas.quote import OperatorStatus, QuoteStatus
from quotedesk.services.booking_converter import advance_for


class UnavailableBookingStore(InMemoryRepository[Booking]):
    async def save(self, entity, expected_version):
        raise RuntimeError("booking store unavailable")


async def test_booking_from_approved_quote(container, approved_quote, booking):
    assert booking.status == BookingStatus.REQUESTED
    assert booking.quote_id == approved_quote.id
    assert booking.unique_ref_no == approved_quote.unique_ref_no
    assert booking.total_amount == Decimal("1200")
    assert booking.advance_amount == Decimal("360")
    assert booking.paid_amount == Decimal("0")
    assert booking.balance_amount == Decimal("1200")
    assert booking.payment_status == PaymentStatus.PENDING
    assert booking.net_cost == approved_quote.cost
    assert booking.operator.status == OperatorStatus.UNASSIGNED
    assert booking.warnings == []

    quote = await container.quotes.get(approved_quote.id)
    assert quote.status == QuoteStatus.BOOKED
    assert quote.is_locked is True


async def test_booking_request_notifies_approvers(container, booking):
    titles = [n["title"] for n in container.notifier.inbox("staff_1")]
    assert "New Booking Request" in titles


async def test_traveler_mismatch_is_a_warning(container, approved_quote, agent, caplog):
    travelers = [Traveler(first_name="Ravi", last_name="Kumar")]
    booking = await container.converter.from_quote(approved_quote, travelers, agent)

    assert booking.status == BookingStatus.REQUESTED
    assert booking.warnings == ["Traveler count 1 does not match pax count 2"]
    assert "does not match pax count" in caplog.text


async def test_draft_quote_cannot_be_booked(container, draft_quote, agent):
    with pytest.raises(InvalidStateTransition):
        await container.converter.from_quote(draft_quote, [], agent)


async def test_quote_is_booked_only_once(container, approved_quote, booking, agent):
    fresh = await container.quotes.get(approved_quote.id)
    with pytest.raises(InvalidStateTransition):
        await container.converter.from_quote(fresh, [], agent)

    bookings = await container.bookings_repo.query(lambda b: b.quote_id == approved_quote.id)
    assert len(bookings) == 1


async def test_booked_quote_can_be_revised(container, approved_quote, booking, agent):
    fresh = await container.quotes.get(approved_quote.id)
    revision = await container.quotes.create_revision(fresh, agent)
    assert revision.version == 2


@pytest.mark.parametrize("total,expected", [
    ("1000", "300"),
    ("1001", "301"),
    ("99.50", "30"),
])
def test_advance_is_ceiled(total, expected):
    assert advance_for(Decimal(total), Decimal("30")) == Decimal(expected)


async def test_conversion_from_stale_read_fails(container, approved_quote, agent):
    await container.quotes.post_message(approved_quote, agent, "Travelers confirmed")
    with pytest.raises(ConcurrentModification):
        await container.converter.from_quote(approved_quote, [], agent)
    assert await container.bookings_repo.query(lambda b: True) == []


async def test_quote_stays_bookable_when_booking_cannot_be_stored(container, approved_quote, agent):
    working_store = container.converter.bookings
    container.converter.bookings = UnavailableBookingStore("booking")
    with pytest.raises(RuntimeError):
        await container.converter.from_quote(approved_quote, [], agent)

    quote = await container.quotes.get(approved_quote.id)
    assert quote.status == QuoteStatus.APPROVED
    assert quote.is_locked is True
    assert quote.messages == approved_quote.messages

    container.converter.bookings = working_store
    booking = await container.converter.from_quote(quote, [], agent)
    assert booking.quote_id == approved_quote.id
    assert (await container.quotes.get(approved_quote.id)).status == QuoteStatus.BOOKED
