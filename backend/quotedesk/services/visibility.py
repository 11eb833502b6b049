"""Visibility resolver — the privacy wall between agents, operators and clients.

Every name and price that leaves the engine (detail view, list view, chat
transcript, exports) goes through this module. Nothing here has side effects.
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from quotedesk.schemas.booking import Booking
from quotedesk.schemas.common import Actor, Role
from quotedesk.schemas.quote import ItineraryItem, Message, OperatorAssignment, Quote

HIDDEN = "HIDDEN"


class Audience(str, Enum):
    INTERNAL = "INTERNAL"
    AGENT = "AGENT"
    SUPPLY = "SUPPLY"
    CLIENT = "CLIENT"


AUDIENCE_BY_ROLE: dict[Role, Audience] = {
    Role.ADMIN: Audience.INTERNAL,
    Role.STAFF: Audience.INTERNAL,
    Role.AGENT: Audience.AGENT,
    Role.OPERATOR: Audience.SUPPLY,
    Role.HOTEL_PARTNER: Audience.SUPPLY,
    Role.CLIENT: Audience.CLIENT,
}

FULL_IDENTITY = "{name} ({role})"

# (viewer audience, sender audience) -> display template
DISPLAY_NAMES: dict[tuple[Audience, Audience], str] = {
    (Audience.SUPPLY, Audience.AGENT): "Colleague",
    (Audience.SUPPLY, Audience.SUPPLY): "Operator",
    (Audience.SUPPLY, Audience.INTERNAL): "Staff: {name}",
    (Audience.SUPPLY, Audience.CLIENT): "Client",
    # Own messages resolve to "You" first; any other agent stays anonymous
    (Audience.AGENT, Audience.AGENT): "Agent",
    (Audience.AGENT, Audience.SUPPLY): "Operator",
    (Audience.AGENT, Audience.INTERNAL): "Staff: {name}",
    (Audience.AGENT, Audience.CLIENT): "Client",
    (Audience.INTERNAL, Audience.AGENT): FULL_IDENTITY,
    (Audience.INTERNAL, Audience.SUPPLY): FULL_IDENTITY,
    (Audience.INTERNAL, Audience.INTERNAL): FULL_IDENTITY,
    (Audience.INTERNAL, Audience.CLIENT): FULL_IDENTITY,
    (Audience.CLIENT, Audience.AGENT): "{name}",
    (Audience.CLIENT, Audience.SUPPLY): "Operator",
    (Audience.CLIENT, Audience.INTERNAL): "Travel Desk",
    (Audience.CLIENT, Audience.CLIENT): "Client",
}


def audience_of(role: Role) -> Audience:
    return AUDIENCE_BY_ROLE[role]


def resolve_display_name(viewer: Actor, message: Message) -> str:
    if message.is_system:
        return "System"
    if message.sender_id == viewer.id:
        return "You"
    template = DISPLAY_NAMES[(audience_of(viewer.role), audience_of(message.sender_role))]
    return template.format(name=message.sender_name, role=message.sender_role.value)


def _record_figures(record: Quote | Booking) -> tuple[Decimal, Decimal, OperatorAssignment]:
    if isinstance(record, Booking):
        return record.net_cost, record.selling_price, record.operator
    return record.cost, record.selling_price, record.operator


def resolve_price(viewer_role: Role, record: Quote | Booking) -> Decimal | str:
    """The single price figure a role may see for a quote or booking.

    Supply side: fixed operator price, else net cost when released to the
    operator, else HIDDEN. Everyone else sees the selling price; internal
    roles get the full breakdown through the redacted views.
    """
    cost, selling_price, operator = _record_figures(record)
    if audience_of(viewer_role) == Audience.SUPPLY:
        if operator.price is not None:
            return operator.price
        if operator.net_cost_visible:
            return cost
        return HIDDEN
    return selling_price


def _display_price(viewer: Actor, record: Quote | Booking) -> Decimal | str:
    # Supply-side figures are only for the operator holding the assignment
    if audience_of(viewer.role) == Audience.SUPPLY and record.operator.operator_id != viewer.id:
        return HIDDEN
    return resolve_price(viewer.role, record)


def _shows_service_costs(viewer: Actor, record: Quote | Booking) -> bool:
    audience = audience_of(viewer.role)
    if audience == Audience.INTERNAL:
        return True
    if audience == Audience.SUPPLY:
        # Line costs sum to net cost; only release them when net cost itself is released
        return (
            record.operator.operator_id == viewer.id
            and record.operator.price is None
            and record.operator.net_cost_visible
        )
    return False


def _itinerary_view(itinerary: list[ItineraryItem], show_costs: bool) -> list[dict[str, Any]]:
    view = []
    for item in itinerary:
        services = []
        for s in item.services:
            entry: dict[str, Any] = {
                "type": s.type.value,
                "name": s.name,
                "quantity": s.quantity,
                "is_ref": s.is_ref,
            }
            if show_costs:
                entry["cost"] = s.cost
                entry["currency"] = s.currency
            services.append(entry)
        view.append({
            "day": item.day,
            "title": item.title,
            "description": item.description,
            "inclusions": list(item.inclusions),
            "services": services,
        })
    return view


def _messages_view(viewer: Actor, messages: list[Message]) -> list[dict[str, Any]]:
    return [
        {
            "id": m.id,
            "sender": resolve_display_name(viewer, m),
            "content": m.content,
            "timestamp": m.timestamp,
            "is_system": m.is_system,
            "is_own": m.sender_id == viewer.id,
        }
        for m in messages
    ]


def _operator_view(viewer: Actor, operator: OperatorAssignment) -> dict[str, Any]:
    audience = audience_of(viewer.role)
    if audience == Audience.INTERNAL:
        return operator.model_dump()
    if audience == Audience.SUPPLY:
        if operator.operator_id != viewer.id:
            return {}
        return {
            "status": operator.status.value,
            "instruction": operator.instruction,
            "price": operator.price,
            "decline_reason": operator.decline_reason,
            "assigned_at": operator.assigned_at,
        }
    if audience == Audience.AGENT:
        return {"status": operator.status.value}
    return {}


def redact_quote(viewer: Actor, quote: Quote) -> dict[str, Any]:
    """Role-scoped view of a quote, the only shape a quote is ever rendered in."""
    audience = audience_of(viewer.role)
    view: dict[str, Any] = {
        "id": quote.id,
        "unique_ref_no": quote.unique_ref_no,
        "version": quote.version,
        "status": quote.status.value,
        "is_locked": quote.is_locked,
        "destination": quote.destination,
        "travel_date": quote.travel_date,
        "pax_count": quote.pax_count,
        "currency": quote.currency,
        "itinerary": _itinerary_view(quote.itinerary, _shows_service_costs(viewer, quote)),
        "display_price": _display_price(viewer, quote),
        "operator": _operator_view(viewer, quote.operator),
        "messages": _messages_view(viewer, quote.messages),
        "row_version": quote.row_version,
    }

    if audience == Audience.INTERNAL:
        view.update({
            "previous_version_id": quote.previous_version_id,
            "agent_id": quote.agent_id,
            "agent_name": quote.agent_name,
            "share_token": quote.share_token,
            "staff_id": quote.staff_id,
            "lead_guest_name": quote.lead_guest_name,
            "pricing_rules": quote.pricing_rules.model_dump(),
            "breakdown": quote.breakdown.model_dump() if quote.breakdown else None,
            "cost": quote.cost,
            "price": quote.price,
            "selling_price": quote.selling_price,
            "cancellation_reason": quote.cancellation_reason,
            "approved_at": quote.approved_snapshot.approved_at if quote.approved_snapshot else None,
        })
    elif audience == Audience.AGENT:
        breakdown = quote.breakdown
        view.update({
            "previous_version_id": quote.previous_version_id,
            "agent_id": quote.agent_id,
            "share_token": quote.share_token,
            "lead_guest_name": quote.lead_guest_name,
            "price": quote.price,
            "selling_price": quote.selling_price,
            "agent_markup_value": breakdown.agent_markup_value if breakdown else None,
            "per_person_price": breakdown.per_person_price if breakdown else None,
            "excluded_services": list(breakdown.excluded_services) if breakdown else [],
            "cancellation_reason": quote.cancellation_reason,
        })
    elif audience == Audience.CLIENT:
        view.update({
            "lead_guest_name": quote.lead_guest_name,
            "per_person_price": quote.breakdown.per_person_price if quote.breakdown else None,
        })
    return view


def redact_booking(viewer: Actor, booking: Booking) -> dict[str, Any]:
    """Role-scoped view of a booking."""
    audience = audience_of(viewer.role)
    view: dict[str, Any] = {
        "id": booking.id,
        "quote_id": booking.quote_id,
        "unique_ref_no": booking.unique_ref_no,
        "status": booking.status.value,
        "currency": booking.currency,
        "pax_count": booking.pax_count,
        "itinerary": _itinerary_view(booking.itinerary, _shows_service_costs(viewer, booking)),
        "display_price": _display_price(viewer, booking),
        "operator": _operator_view(viewer, booking.operator),
        "driver_details": booking.driver_details.model_dump() if booking.driver_details else None,
        "messages": _messages_view(viewer, booking.messages),
        "row_version": booking.row_version,
    }

    if audience in (Audience.INTERNAL, Audience.AGENT, Audience.CLIENT):
        view.update({
            "travelers": [t.model_dump() for t in booking.travelers],
            "total_amount": booking.total_amount,
            "advance_amount": booking.advance_amount,
            "paid_amount": booking.paid_amount,
            "balance_amount": booking.balance_amount,
            "payment_status": booking.payment_status.value,
        })
    if audience in (Audience.INTERNAL, Audience.AGENT):
        view.update({
            "agent_id": booking.agent_id,
            "share_token": booking.share_token,
            "payments": [p.model_dump() for p in booking.payments],
            "credit_amount": booking.ledger().credit,
            "cancellation": booking.cancellation.model_dump() if booking.cancellation else None,
        })
    if audience == Audience.INTERNAL:
        view.update({
            "agent_name": booking.agent_name,
            "staff_id": booking.staff_id,
            "company_id": booking.company_id,
            "net_cost": booking.net_cost,
            "selling_price": booking.selling_price,
            "credit_notes": [c.model_dump() for c in booking.credit_notes],
            "warnings": list(booking.warnings),
        })
    elif audience == Audience.SUPPLY:
        view["travelers"] = [
            {"first_name": t.first_name, "last_name": t.last_name, "type": t.type.value}
            for t in booking.travelers
        ]
    return view


def render_transcript(viewer: Actor, messages: list[Message]) -> str:
    """Plain-text chat replay in append order, names resolved for the viewer."""
    lines = []
    for m in messages:
        stamp = m.timestamp.strftime("%Y-%m-%d %H:%M")
        lines.append(f"[{stamp}] {resolve_display_name(viewer, m)}: {m.content}")
    return "\n".join(lines)
