from decimal import Decimal

import pytest

from quotedesk.errors import InvalidStateTransition, Unauthorized, ValidationError
from quotedesk.schemas.booking import BookingStatus, DriverDetails, PaymentMode
from quotedesk.schemas.common import Actor
from quotedesk.schemas.quote import OperatorPriceMode
from quotedesk.services import permissions
from quotedesk.services.permissions import Action


async def _accepted(container, booking, staff, operator):
    assigned = await container.operators.assign(booking, staff, operator, OperatorPriceMode.NET_COST)
    return await container.operators.accept(assigned, operator)


async def test_full_execution_path(container, booking, staff, operator):
    confirmed = await container.bookings.confirm(booking, staff)
    assert confirmed.status == BookingStatus.CONFIRMED

    accepted = await _accepted(container, confirmed, staff, operator)
    started = await container.bookings.start(accepted, operator)
    assert started.status == BookingStatus.IN_PROGRESS

    completed = await container.bookings.complete(started, operator)
    assert completed.status == BookingStatus.COMPLETED

    actions = [e.action for e in container.audit_sink.for_entity(booking.id)]
    assert "BOOKING_CONFIRMED" in actions and "BOOKING_COMPLETED" in actions


async def test_start_requires_accepted_operator(container, booking, staff):
    confirmed = await container.bookings.confirm(booking, staff)
    with pytest.raises(InvalidStateTransition):
        await container.bookings.start(confirmed, staff)


async def test_agent_cannot_confirm(container, booking, agent):
    with pytest.raises(Unauthorized):
        await container.bookings.confirm(booking, agent)


async def test_reject_only_from_requested(container, booking, staff):
    rejected = await container.bookings.reject(booking, staff, "No availability")
    assert rejected.status == BookingStatus.REJECTED
    with pytest.raises(InvalidStateTransition):
        await container.bookings.confirm(rejected, staff)


async def test_cancellation_needs_reason(container, booking, agent):
    with pytest.raises(ValidationError):
        await container.bookings.request_cancellation(booking, agent, "")


async def test_cancellation_refunds_paid_less_penalty(container, booking, agent, staff):
    paid = await container.payments.record_payment(booking, staff, "pay_1", Decimal("360"), PaymentMode.UPI)
    requested = await container.bookings.request_cancellation(paid.booking, agent, "Medical emergency")
    assert requested.status == BookingStatus.CANCELLATION_REQUESTED
    assert requested.cancellation.previous_status == BookingStatus.REQUESTED

    cancelled = await container.bookings.process_cancellation(requested, staff, Decimal("100"), "Hotel fee")
    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation.refund_amount == Decimal("260")
    assert cancelled.cancellation.processed_by == staff.id


async def test_refund_never_exceeds_paid(container, booking, agent, staff):
    requested = await container.bookings.request_cancellation(booking, agent, "Trip postponed")
    cancelled = await container.bookings.process_cancellation(requested, staff, Decimal("500"))
    assert cancelled.cancellation.refund_amount == Decimal("0")


async def test_completed_booking_cannot_be_cancelled(container, booking, staff, operator, agent):
    confirmed = await container.bookings.confirm(booking, staff)
    accepted = await _accepted(container, confirmed, staff, operator)
    started = await container.bookings.start(accepted, staff)
    completed = await container.bookings.complete(started, staff)
    with pytest.raises(InvalidStateTransition):
        await container.bookings.request_cancellation(completed, agent, "Too late")


async def test_assigned_operator_sets_driver(container, booking, staff, operator, other_operator):
    accepted = await _accepted(container, booking, staff, operator)
    driver = DriverDetails(name="Imran", phone="+971500000000", vehicle_number="DXB 4411")

    with pytest.raises(Unauthorized):
        await container.bookings.set_driver_details(accepted, other_operator, driver)

    updated = await container.bookings.set_driver_details(accepted, operator, driver)
    assert updated.driver_details == driver


async def test_public_viewers_never_list_bookings(container, booking, client):
    assert await container.bookings.list_for(client) == []
    assert await container.bookings.list_for(Actor.public_client(booking.share_token)) == []


async def test_booking_link_follows_quote_link(container, approved_quote, booking, client):
    assert booking.share_token == approved_quote.share_token
    assert permissions.can(Actor.public_client(booking.share_token), Action.VIEW, booking)
    assert not permissions.can(client, Action.VIEW, booking)
    assert not permissions.can(client, Action.RECORD_PAYMENT, booking)
