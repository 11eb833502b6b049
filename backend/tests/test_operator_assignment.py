from decimal import Decimal

import pytest

from quotedesk.errors import InvalidStateTransition, Unauthorized, ValidationError
from quotedesk.schemas.booking import BookingStatus
from quotedesk.schemas.quote import OperatorPriceMode, OperatorStatus
from quotedesk.services.visibility import HIDDEN, redact_quote, resolve_price


async def test_fixed_price_assignment_hides_net_cost(container, approved_quote, staff, operator):
    assigned = await container.operators.assign(
        approved_quote, staff, operator, OperatorPriceMode.FIXED_PRICE, Decimal("850"),
        instruction="Meet guests at T3 arrivals",
    )
    assert assigned.operator.status == OperatorStatus.ASSIGNED
    assert assigned.operator.price == Decimal("850")
    assert assigned.operator.net_cost_visible is False
    assert assigned.is_locked is True
    assert resolve_price(operator.role, assigned) == Decimal("850")


async def test_net_cost_assignment_releases_cost(container, approved_quote, staff, operator):
    assigned = await container.operators.assign(approved_quote, staff, operator, OperatorPriceMode.NET_COST)
    assert assigned.operator.price is None
    assert resolve_price(operator.role, assigned) == approved_quote.cost


async def test_fixed_price_must_be_positive(container, approved_quote, staff, operator):
    with pytest.raises(ValidationError):
        await container.operators.assign(approved_quote, staff, operator, OperatorPriceMode.FIXED_PRICE)


async def test_only_operators_can_be_assigned(container, approved_quote, staff, other_agent):
    with pytest.raises(ValidationError):
        await container.operators.assign(approved_quote, staff, other_agent, OperatorPriceMode.NET_COST)


async def test_agent_cannot_assign(container, approved_quote, agent, operator):
    with pytest.raises(Unauthorized):
        await container.operators.assign(approved_quote, agent, operator, OperatorPriceMode.NET_COST)


async def test_assignment_notifies_operator(container, approved_quote, staff, operator):
    await container.operators.assign(approved_quote, staff, operator, OperatorPriceMode.NET_COST)
    inbox = container.notifier.inbox(operator.id)
    assert inbox[-1]["title"] == "New Assignment"
    assert inbox[-1]["link"] == f"/quotes/{approved_quote.id}"


async def test_only_assigned_operator_responds(container, approved_quote, staff, operator, other_operator):
    assigned = await container.operators.assign(approved_quote, staff, operator, OperatorPriceMode.NET_COST)
    with pytest.raises(Unauthorized):
        await container.operators.accept(assigned, other_operator)

    accepted = await container.operators.accept(assigned, operator)
    assert accepted.operator.status == OperatorStatus.ACCEPTED
    assert container.notifier.inbox(staff.id)[-1]["title"] == "Assignment Accepted"


async def test_decline_requires_reason(container, approved_quote, staff, operator):
    assigned = await container.operators.assign(approved_quote, staff, operator, OperatorPriceMode.NET_COST)
    with pytest.raises(ValidationError):
        await container.operators.decline(assigned, operator, "   ")


async def test_reassign_after_decline(container, approved_quote, staff, operator, other_operator):
    assigned = await container.operators.assign(approved_quote, staff, operator, OperatorPriceMode.NET_COST)
    declined = await container.operators.decline(assigned, operator, "Fleet fully booked")
    assert declined.operator.status == OperatorStatus.DECLINED
    assert declined.operator.decline_reason == "Fleet fully booked"

    reassigned = await container.operators.assign(
        declined, staff, other_operator, OperatorPriceMode.FIXED_PRICE, Decimal("900")
    )
    assert reassigned.operator.status == OperatorStatus.ASSIGNED
    assert reassigned.operator.operator_id == other_operator.id
    assert reassigned.operator.decline_reason is None
    assert any("Fleet fully booked" in m.content for m in reassigned.messages)

    actions = [e.action for e in container.audit_sink.for_entity(approved_quote.id)]
    assert actions[-3:] == ["OPERATOR_ASSIGNED", "OPERATOR_DECLINED", "OPERATOR_ASSIGNED"]

    # The first operator no longer sees the assignment
    view = redact_quote(operator, reassigned)
    assert view["operator"] == {}
    assert view["display_price"] == HIDDEN


async def test_accepted_assignment_cannot_be_reassigned(container, approved_quote, staff, operator, other_operator):
    assigned = await container.operators.assign(approved_quote, staff, operator, OperatorPriceMode.NET_COST)
    accepted = await container.operators.accept(assigned, operator)
    with pytest.raises(InvalidStateTransition):
        await container.operators.assign(accepted, staff, other_operator, OperatorPriceMode.NET_COST)


async def test_accept_does_not_move_booking_status(container, booking, staff, operator):
    assigned = await container.operators.assign(booking, staff, operator, OperatorPriceMode.NET_COST)
    accepted = await container.operators.accept(assigned, operator)
    assert accepted.status == BookingStatus.REQUESTED
    assert accepted.operator.status == OperatorStatus.ACCEPTED
    assert container.notifier.inbox(operator.id)[-1]["link"] == f"/bookings/{booking.id}"
