"""Role rights for every transition, scoped to record ownership."""

import secrets
from enum import Enum

from quotedesk.errors import Unauthorized
from quotedesk.schemas.booking import Booking
from quotedesk.schemas.common import Actor, Role
from quotedesk.schemas.quote import Quote, QuoteStatus


class Action(str, Enum):
    VIEW = "VIEW"
    CREATE_QUOTE = "CREATE_QUOTE"
    EDIT_QUOTE = "EDIT_QUOTE"
    SUBMIT_QUOTE = "SUBMIT_QUOTE"
    APPROVE_QUOTE = "APPROVE_QUOTE"
    REJECT_QUOTE = "REJECT_QUOTE"
    CANCEL_QUOTE = "CANCEL_QUOTE"
    REVISE_QUOTE = "REVISE_QUOTE"
    DUPLICATE_QUOTE = "DUPLICATE_QUOTE"
    POST_MESSAGE = "POST_MESSAGE"
    CONVERT_TO_BOOKING = "CONVERT_TO_BOOKING"
    ASSIGN_OPERATOR = "ASSIGN_OPERATOR"
    RESPOND_ASSIGNMENT = "RESPOND_ASSIGNMENT"
    CONFIRM_BOOKING = "CONFIRM_BOOKING"
    REJECT_BOOKING = "REJECT_BOOKING"
    RUN_BOOKING = "RUN_BOOKING"
    REQUEST_CANCELLATION = "REQUEST_CANCELLATION"
    PROCESS_CANCELLATION = "PROCESS_CANCELLATION"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    MANAGE_WALLET = "MANAGE_WALLET"


_INTERNAL = {Role.ADMIN, Role.STAFF}
_SUPPLY = {Role.OPERATOR, Role.HOTEL_PARTNER}

ALLOWED_ROLES: dict[Action, set[Role]] = {
    Action.VIEW: set(Role),
    Action.CREATE_QUOTE: _INTERNAL | {Role.AGENT},
    Action.EDIT_QUOTE: _INTERNAL | {Role.AGENT},
    Action.SUBMIT_QUOTE: _INTERNAL | {Role.AGENT},
    Action.APPROVE_QUOTE: _INTERNAL,
    Action.REJECT_QUOTE: _INTERNAL,
    Action.CANCEL_QUOTE: _INTERNAL | {Role.AGENT},
    Action.REVISE_QUOTE: _INTERNAL | {Role.AGENT},
    Action.DUPLICATE_QUOTE: _INTERNAL | {Role.AGENT},
    Action.POST_MESSAGE: _INTERNAL | {Role.AGENT} | _SUPPLY,
    Action.CONVERT_TO_BOOKING: _INTERNAL | {Role.AGENT, Role.CLIENT},
    Action.ASSIGN_OPERATOR: _INTERNAL,
    Action.RESPOND_ASSIGNMENT: _SUPPLY,
    Action.CONFIRM_BOOKING: _INTERNAL,
    Action.REJECT_BOOKING: _INTERNAL,
    Action.RUN_BOOKING: _INTERNAL | _SUPPLY,
    Action.REQUEST_CANCELLATION: _INTERNAL | {Role.AGENT},
    Action.PROCESS_CANCELLATION: _INTERNAL,
    Action.RECORD_PAYMENT: _INTERNAL | {Role.AGENT, Role.CLIENT},
    Action.MANAGE_WALLET: _INTERNAL,
}

# Quotes a public client link may open
CLIENT_VISIBLE_QUOTE_STATUSES = {QuoteStatus.APPROVED, QuoteStatus.BOOKED}


def _owns(actor: Actor, record: Quote | Booking) -> bool:
    if actor.role in _INTERNAL:
        return True
    if actor.role == Role.AGENT:
        return record.agent_id == actor.id
    if actor.role in _SUPPLY:
        return record.operator.operator_id == actor.id
    if actor.role == Role.CLIENT:
        return _opens_shared_link(actor, record)
    return False


def _opens_shared_link(actor: Actor, record: Quote | Booking) -> bool:
    """A public client reaches only the lineage whose share token it presents."""
    if not actor.share_token or not secrets.compare_digest(actor.share_token, record.share_token):
        return False
    if isinstance(record, Quote):
        return record.status in CLIENT_VISIBLE_QUOTE_STATUSES
    return True


def can(actor: Actor, action: Action, record: Quote | Booking | None = None) -> bool:
    if actor.role not in ALLOWED_ROLES[action]:
        return False
    if record is None:
        return True
    return _owns(actor, record)


def require(actor: Actor, action: Action, record: Quote | Booking | None = None) -> None:
    if not can(actor, action, record):
        raise Unauthorized(
            f"{actor.role.value} may not perform {action.value}",
            actor_id=actor.id,
            action=action.value,
            record_id=record.id if record else None,
        )
