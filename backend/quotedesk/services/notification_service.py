"""Notification service — composes workflow notifications and hands them to the notifier.

Dispatch is fire-and-forget: a failing notifier is logged, never raised into
the transition that triggered it.
"""

import logging

from quotedesk.data.currency import format_price
from quotedesk.interfaces import Notifier
from quotedesk.schemas.booking import Booking, PaymentEntry
from quotedesk.schemas.quote import Quote

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, notifier: Notifier, approver_ids: list[str] | None = None):
        self.notifier = notifier
        self.approver_ids = approver_ids or []

    async def send_approval_request(self, quote: Quote, submitter_name: str) -> None:
        recipients = [quote.staff_id] if quote.staff_id else self.approver_ids
        await self._send(
            recipients,
            title="New Quote Approval Request",
            body=f"{submitter_name} submitted quote {quote.unique_ref_no} (v{quote.version}) for approval.",
            link=f"/quotes/{quote.id}",
        )

    async def send_decision(self, quote: Quote, decision: str, reason: str | None = None) -> None:
        titles = {
            "approved": "Quote Approved",
            "rejected": "Quote Returned for Changes",
            "cancelled": "Quote Cancelled",
        }
        body = f"Quote {quote.unique_ref_no} (v{quote.version}) was {decision}."
        if reason:
            body += f" Reason: {reason}"
        await self._send(
            [quote.agent_id],
            title=titles.get(decision, "Quote Update"),
            body=body,
            link=f"/quotes/{quote.id}",
        )

    async def send_operator_assigned(self, record: Quote | Booking, link: str) -> None:
        await self._send(
            [record.operator.operator_id],
            title="New Assignment",
            body=f"You have been assigned to trip {record.unique_ref_no}. Please accept or decline.",
            link=link,
        )

    async def send_operator_response(
        self, record: Quote | Booking, accepted: bool, link: str
    ) -> None:
        verb = "accepted" if accepted else "declined"
        body = f"{record.operator.operator_name} {verb} the assignment for {record.unique_ref_no}."
        if not accepted and record.operator.decline_reason:
            body += f" Reason: {record.operator.decline_reason}"
        await self._send(
            [record.operator.assigned_by],
            title=f"Assignment {verb.capitalize()}",
            body=body,
            link=link,
        )

    async def send_booking_requested(self, booking: Booking) -> None:
        await self._send(
            self.approver_ids,
            title="New Booking Request",
            body=(
                f"Booking requested for {booking.unique_ref_no}: "
                f"{format_price(booking.total_amount, booking.currency)}."
            ),
            link=f"/bookings/{booking.id}",
        )

    async def send_booking_status(self, booking: Booking) -> None:
        await self._send(
            [booking.agent_id],
            title="Booking Update",
            body=f"Booking {booking.unique_ref_no} is now {booking.status.value.replace('_', ' ').lower()}.",
            link=f"/bookings/{booking.id}",
        )

    async def send_payment_received(self, booking: Booking, entry: PaymentEntry) -> None:
        await self._send(
            [booking.agent_id],
            title="Payment Received",
            body=(
                f"{format_price(entry.amount, booking.currency)} received for {booking.unique_ref_no} "
                f"(receipt {entry.receipt_number}). Balance: "
                f"{format_price(booking.balance_amount, booking.currency)}."
            ),
            link=f"/bookings/{booking.id}",
        )

    async def _send(
        self, recipient_ids: list[str | None], title: str, body: str, link: str | None = None
    ) -> None:
        recipients = [r for r in recipient_ids if r]
        if not recipients:
            return
        try:
            await self.notifier.notify(recipients, title, body, link)
        except Exception as e:
            logger.warning(f"Notification '{title}' not dispatched: {e}")
