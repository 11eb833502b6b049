"""Booking service — execution and cancellation axis of a booking.

REQUESTED → CONFIRMED → IN_PROGRESS → COMPLETED
REQUESTED → REJECTED
REQUESTED | CONFIRMED | IN_PROGRESS → CANCELLATION_REQUESTED → CANCELLED

The operator axis (see operator_assignment) runs alongside; a trip can only
start once the assigned operator has accepted.
"""

import logging
from decimal import Decimal
from typing import Any

from quotedesk.errors import ConcurrentModification, InvalidStateTransition, NotFound, ValidationError
from quotedesk.interfaces import Repository
from quotedesk.schemas.audit import EntityType
from quotedesk.schemas.booking import Booking, BookingStatus, CancellationDetails, DriverDetails
from quotedesk.schemas.common import Actor, Role, utcnow
from quotedesk.schemas.quote import Message, OperatorStatus
from quotedesk.services import permissions
from quotedesk.services.audit_recorder import AuditRecorder
from quotedesk.services.notification_service import NotificationService
from quotedesk.services.permissions import Action

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = {BookingStatus.REQUESTED, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}


class BookingService:
    def __init__(
        self,
        bookings: Repository[Booking],
        audit: AuditRecorder,
        notifications: NotificationService,
    ):
        self.bookings = bookings
        self.audit = audit
        self.notifications = notifications

    async def get(self, booking_id: str) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    async def list_for(self, viewer: Actor) -> list[Booking]:
        if viewer.role == Role.CLIENT:
            return []
        bookings = await self.bookings.query(lambda b: permissions.can(viewer, Action.VIEW, b))
        return sorted(bookings, key=lambda b: b.created_at, reverse=True)

    async def confirm(self, booking: Booking, actor: Actor) -> Booking:
        current = await self._current(booking)
        permissions.require(actor, Action.CONFIRM_BOOKING, current)
        return await self._transition(current, actor, {BookingStatus.REQUESTED}, BookingStatus.CONFIRMED,
                                      "Booking confirmed.")

    async def reject(self, booking: Booking, actor: Actor, reason: str) -> Booking:
        current = await self._current(booking)
        permissions.require(actor, Action.REJECT_BOOKING, current)
        reason = _required(reason, "A rejection reason is required")
        return await self._transition(current, actor, {BookingStatus.REQUESTED}, BookingStatus.REJECTED,
                                      f"Booking rejected. Reason: {reason}")

    async def start(self, booking: Booking, actor: Actor) -> Booking:
        current = await self._current(booking)
        permissions.require(actor, Action.RUN_BOOKING, current)
        if current.operator.status != OperatorStatus.ACCEPTED:
            raise InvalidStateTransition(
                "Trip cannot start before the assigned operator accepts",
                booking_id=current.id,
                operator_status=current.operator.status.value,
            )
        return await self._transition(current, actor, {BookingStatus.CONFIRMED}, BookingStatus.IN_PROGRESS,
                                      "Trip started.")

    async def complete(self, booking: Booking, actor: Actor) -> Booking:
        current = await self._current(booking)
        permissions.require(actor, Action.RUN_BOOKING, current)
        return await self._transition(current, actor, {BookingStatus.IN_PROGRESS}, BookingStatus.COMPLETED,
                                      "Trip completed.")

    async def set_driver_details(self, booking: Booking, actor: Actor, driver: DriverDetails) -> Booking:
        current = await self._current(booking)
        permissions.require(actor, Action.RUN_BOOKING, current)
        if current.status in (BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.COMPLETED):
            raise InvalidStateTransition(
                f"Cannot update driver details on a {current.status.value} booking",
                booking_id=current.id,
            )
        updated = current.model_copy(update={
            "driver_details": driver,
            "messages": [*current.messages, Message.system(f"Driver assigned: {driver.name}.")],
            "updated_at": utcnow(),
        })
        saved = await self.bookings.save(updated, expected_version=current.row_version)
        await self.audit.record(
            EntityType.BOOKING, saved.id, "DRIVER_DETAILS_SET", actor,
            description=f"Driver {driver.name} ({driver.vehicle_number or 'no vehicle'})",
            previous_value=current.driver_details.model_dump() if current.driver_details else None,
            new_value=driver.model_dump(),
        )
        return saved

    async def post_message(self, booking: Booking, actor: Actor, content: str) -> Booking:
        current = await self._current(booking)
        permissions.require(actor, Action.POST_MESSAGE, current)
        content = _required(content, "Message content is required")
        message = Message(sender_id=actor.id, sender_name=actor.name, sender_role=actor.role, content=content)
        updated = current.model_copy(update={"messages": [*current.messages, message]})
        return await self.bookings.save(updated, expected_version=current.row_version)

    # ─── Cancellation ───

    async def request_cancellation(self, booking: Booking, actor: Actor, reason: str) -> Booking:
        current = await self._current(booking)
        permissions.require(actor, Action.REQUEST_CANCELLATION, current)
        reason = _required(reason, "A cancellation reason is required")
        _require_status(current, CANCELLABLE_STATUSES, "request cancellation of")

        now = utcnow()
        updated = current.model_copy(update={
            "status": BookingStatus.CANCELLATION_REQUESTED,
            "cancellation": CancellationDetails(
                requested_by=actor.id,
                requested_at=now,
                reason=reason,
                previous_status=current.status,
            ),
            "messages": [*current.messages, Message.system(f"Cancellation requested. Reason: {reason}")],
            "updated_at": now,
        })
        saved = await self.bookings.save(updated, expected_version=current.row_version)
        await self.audit.record(
            EntityType.CANCELLATION, saved.id, "CANCELLATION_REQUESTED", actor,
            description=reason,
            previous_value={"status": current.status.value},
            new_value={"status": saved.status.value},
        )
        await self.notifications.send_booking_status(saved)
        logger.info(f"Cancellation requested for booking {saved.id} by {actor.id}")
        return saved

    async def process_cancellation(
        self,
        booking: Booking,
        actor: Actor,
        penalty_amount: Decimal,
        admin_note: str | None = None,
    ) -> Booking:
        """Settle a cancellation request. Refund is what was paid less the penalty, never negative."""
        current = await self._current(booking)
        permissions.require(actor, Action.PROCESS_CANCELLATION, current)
        _require_status(current, {BookingStatus.CANCELLATION_REQUESTED}, "process cancellation of")
        if penalty_amount < 0:
            raise ValidationError("Penalty cannot be negative", penalty_amount=str(penalty_amount))

        paid = current.ledger().paid
        refund = max(paid - penalty_amount, Decimal("0"))
        now = utcnow()
        details = current.cancellation.model_copy(update={
            "penalty_amount": penalty_amount,
            "refund_amount": refund,
            "admin_note": admin_note,
            "processed_by": actor.id,
            "processed_at": now,
        })
        updated = current.model_copy(update={
            "status": BookingStatus.CANCELLED,
            "cancellation": details,
            "messages": [*current.messages, Message.system("Booking cancelled.")],
            "updated_at": now,
        })
        saved = await self.bookings.save(updated, expected_version=current.row_version)
        await self.audit.record(
            EntityType.CANCELLATION, saved.id, "CANCELLATION_PROCESSED", actor,
            description=admin_note or "",
            previous_value={"status": current.status.value, "paid_amount": str(paid)},
            new_value={
                "status": saved.status.value,
                "penalty_amount": str(penalty_amount),
                "refund_amount": str(refund),
            },
        )
        await self.notifications.send_booking_status(saved)
        logger.info(f"Booking {saved.id} cancelled (penalty {penalty_amount}, refund {refund})")
        return saved

    # ─── Helpers ───

    async def _current(self, booking: Booking) -> Booking:
        current = await self.get(booking.id)
        if current.row_version != booking.row_version:
            raise ConcurrentModification(
                f"Booking {booking.id} changed since it was read; reload and retry",
                booking_id=booking.id,
                expected_version=booking.row_version,
                current_version=current.row_version,
            )
        return current

    async def _transition(
        self,
        current: Booking,
        actor: Actor,
        allowed: set[BookingStatus],
        target: BookingStatus,
        note: str,
    ) -> Booking:
        _require_status(current, allowed, f"move to {target.value}")
        updated = current.model_copy(update={
            "status": target,
            "messages": [*current.messages, Message.system(note)],
            "updated_at": utcnow(),
        })
        saved = await self.bookings.save(updated, expected_version=current.row_version)
        await self.audit.record(
            EntityType.BOOKING, saved.id, f"BOOKING_{target.value}", actor,
            description=note,
            previous_value=_summary(current),
            new_value=_summary(saved),
        )
        await self.notifications.send_booking_status(saved)
        logger.info(f"Booking {saved.id}: {current.status.value} -> {target.value} by {actor.id}")
        return saved


def _summary(booking: Booking) -> dict[str, Any]:
    return {"status": booking.status.value, "operator_status": booking.operator.status.value}


def _required(value: str | None, message: str) -> str:
    if not value or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _require_status(booking: Booking, allowed: set[BookingStatus], operation: str) -> None:
    if booking.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot {operation} a booking in status {booking.status.value}",
            booking_id=booking.id,
            status=booking.status.value,
        )
