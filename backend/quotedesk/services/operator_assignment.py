"""Operator assignment workflow — UNASSIGNED → ASSIGNED → ACCEPTED | DECLINED.

Runs on a quote or a booking, independently of their own status axes.
Assignment is operational data, so it is allowed on locked quotes. A declined
assignment can be handed to another operator; the previous decline stays in
the message history and the audit log.
"""

import logging
from decimal import Decimal
from typing import TypeVar

from quotedesk.errors import ConcurrentModification, InvalidStateTransition, NotFound, ValidationError
from quotedesk.interfaces import Repository
from quotedesk.schemas.audit import EntityType
from quotedesk.schemas.booking import Booking, BookingStatus
from quotedesk.schemas.common import Actor, Role, utcnow
from quotedesk.schemas.quote import (
    Message,
    OperatorAssignment,
    OperatorPriceMode,
    OperatorStatus,
    Quote,
    QuoteStatus,
)
from quotedesk.services import permissions
from quotedesk.services.audit_recorder import AuditRecorder
from quotedesk.services.notification_service import NotificationService
from quotedesk.services.permissions import Action

logger = logging.getLogger(__name__)

R = TypeVar("R", Quote, Booking)

OPERATOR_ROLES = {Role.OPERATOR, Role.HOTEL_PARTNER}
ASSIGNABLE_STATUSES = {OperatorStatus.UNASSIGNED, OperatorStatus.ASSIGNED, OperatorStatus.DECLINED}
CLOSED_QUOTE_STATUSES = {QuoteStatus.CANCELLED}
CLOSED_BOOKING_STATUSES = {BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.COMPLETED}


class OperatorAssignmentWorkflow:
    def __init__(
        self,
        quotes: Repository[Quote],
        bookings: Repository[Booking],
        audit: AuditRecorder,
        notifications: NotificationService,
    ):
        self.quotes = quotes
        self.bookings = bookings
        self.audit = audit
        self.notifications = notifications

    async def assign(
        self,
        record: R,
        actor: Actor,
        operator: Actor,
        price_mode: OperatorPriceMode,
        price: Decimal | None = None,
        instruction: str | None = None,
    ) -> R:
        current = await self._current(record)
        permissions.require(actor, Action.ASSIGN_OPERATOR, current)
        if operator.role not in OPERATOR_ROLES:
            raise ValidationError(
                f"{operator.name} is not an operator",
                operator_id=operator.id,
                role=operator.role.value,
            )
        if _is_closed(current):
            raise InvalidStateTransition(
                f"Cannot assign an operator to a closed {_kind(current)}",
                record_id=current.id,
            )
        if current.operator.status not in ASSIGNABLE_STATUSES:
            raise InvalidStateTransition(
                f"Operator already {current.operator.status.value.lower()} on {current.id}",
                record_id=current.id,
                operator_status=current.operator.status.value,
            )

        if price_mode == OperatorPriceMode.FIXED_PRICE:
            if price is None or price <= 0:
                raise ValidationError("A fixed operator price must be positive", price=str(price))
            assigned_price, net_cost_visible = price, False
        else:
            assigned_price, net_cost_visible = None, True

        assignment = OperatorAssignment(
            status=OperatorStatus.ASSIGNED,
            operator_id=operator.id,
            operator_name=operator.name,
            price=assigned_price,
            net_cost_visible=net_cost_visible,
            decline_reason=None,
            instruction=instruction,
            assigned_by=actor.id,
            assigned_at=utcnow(),
        )
        note = "Operator assigned." if current.operator.status == OperatorStatus.UNASSIGNED else "Operator reassigned."
        saved = await self._save(current, assignment, note, actor, "OPERATOR_ASSIGNED")
        await self.notifications.send_operator_assigned(saved, _link(saved))
        return saved

    async def accept(self, record: R, actor: Actor) -> R:
        current = await self._current(record)
        self._require_assigned_operator(current, actor)
        assignment = current.operator.model_copy(update={"status": OperatorStatus.ACCEPTED})
        saved = await self._save(current, assignment, "Operator accepted the assignment.", actor,
                                 "OPERATOR_ACCEPTED")
        await self.notifications.send_operator_response(saved, True, _link(saved))
        return saved

    async def decline(self, record: R, actor: Actor, reason: str) -> R:
        current = await self._current(record)
        self._require_assigned_operator(current, actor)
        if not reason or not reason.strip():
            raise ValidationError("A decline reason is required")
        reason = reason.strip()
        assignment = current.operator.model_copy(update={
            "status": OperatorStatus.DECLINED,
            "decline_reason": reason,
        })
        saved = await self._save(current, assignment, f"Assignment declined. Reason: {reason}", actor,
                                 "OPERATOR_DECLINED")
        await self.notifications.send_operator_response(saved, False, _link(saved))
        return saved

    # ─── Helpers ───

    @staticmethod
    def _require_assigned_operator(record: Quote | Booking, actor: Actor) -> None:
        permissions.require(actor, Action.RESPOND_ASSIGNMENT, record)
        if record.operator.status != OperatorStatus.ASSIGNED:
            raise InvalidStateTransition(
                f"No open assignment on {record.id} (operator {record.operator.status.value})",
                record_id=record.id,
                operator_status=record.operator.status.value,
            )

    def _repo(self, record: Quote | Booking) -> Repository:
        return self.bookings if isinstance(record, Booking) else self.quotes

    async def _current(self, record: R) -> R:
        current = await self._repo(record).get(record.id)
        if current is None:
            raise NotFound(f"{_kind(record).capitalize()} {record.id} not found", record_id=record.id)
        if current.row_version != record.row_version:
            raise ConcurrentModification(
                f"{_kind(record).capitalize()} {record.id} changed since it was read; reload and retry",
                record_id=record.id,
                expected_version=record.row_version,
                current_version=current.row_version,
            )
        return current

    async def _save(self, current: R, assignment: OperatorAssignment, note: str, actor: Actor, action: str) -> R:
        updated = current.model_copy(update={
            "operator": assignment,
            "messages": [*current.messages, Message.system(note)],
            "updated_at": utcnow(),
        })
        saved = await self._repo(current).save(updated, expected_version=current.row_version)
        await self.audit.record(
            EntityType.OPERATOR_ASSIGNMENT, saved.id, action, actor,
            description=note,
            previous_value=_assignment_summary(current.operator),
            new_value=_assignment_summary(assignment),
        )
        logger.info(f"{_kind(saved).capitalize()} {saved.id}: {action} ({assignment.operator_id})")
        return saved


def _kind(record: Quote | Booking) -> str:
    return "booking" if isinstance(record, Booking) else "quote"


def _link(record: Quote | Booking) -> str:
    return f"/{_kind(record)}s/{record.id}"


def _is_closed(record: Quote | Booking) -> bool:
    if isinstance(record, Booking):
        return record.status in CLOSED_BOOKING_STATUSES
    return record.status in CLOSED_QUOTE_STATUSES


def _assignment_summary(assignment: OperatorAssignment) -> dict:
    return {
        "status": assignment.status.value,
        "operator_id": assignment.operator_id,
        "price": str(assignment.price) if assignment.price is not None else None,
        "net_cost_visible": assignment.net_cost_visible,
        "decline_reason": assignment.decline_reason,
    }
