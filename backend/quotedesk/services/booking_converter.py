"""Booking converter — turns an approved quote into a booking.

The quote is marked BOOKED first (compare-and-swap), so two concurrent
conversions of the same quote cannot both produce a booking. If the booking
cannot be stored, the quote goes back to APPROVED.
"""

import logging
import uuid
from decimal import ROUND_CEILING, Decimal

from quotedesk.errors import ConcurrentModification, InvalidStateTransition, NotFound
from quotedesk.interfaces import Repository
from quotedesk.schemas.audit import EntityType
from quotedesk.schemas.booking import Booking, Traveler
from quotedesk.schemas.common import Actor, utcnow
from quotedesk.schemas.quote import Message, OperatorAssignment, Quote, QuoteStatus, clone_itinerary
from quotedesk.services import permissions
from quotedesk.services.audit_recorder import AuditRecorder
from quotedesk.services.notification_service import NotificationService
from quotedesk.services.permissions import Action
from quotedesk.services.pricing_engine import billable_amount

logger = logging.getLogger(__name__)


def advance_for(total_amount: Decimal, advance_percent: Decimal) -> Decimal:
    """Advance due on booking, ceiled to a whole unit."""
    advance = total_amount * advance_percent / Decimal("100")
    return advance.to_integral_value(rounding=ROUND_CEILING)


class BookingConverter:
    def __init__(
        self,
        quotes: Repository[Quote],
        bookings: Repository[Booking],
        audit: AuditRecorder,
        notifications: NotificationService,
        advance_percent: Decimal = Decimal("30"),
        company_id: str = "company_default",
    ):
        self.quotes = quotes
        self.bookings = bookings
        self.audit = audit
        self.notifications = notifications
        self.advance_percent = advance_percent
        self.company_id = company_id

    async def from_quote(self, quote: Quote, travelers: list[Traveler], actor: Actor) -> Booking:
        current = await self.quotes.get(quote.id)
        if current is None:
            raise NotFound(f"Quote {quote.id} not found", quote_id=quote.id)
        permissions.require(actor, Action.CONVERT_TO_BOOKING, current)
        if current.status != QuoteStatus.APPROVED:
            raise InvalidStateTransition(
                f"Only approved quotes can be booked (status {current.status.value})",
                quote_id=current.id,
                status=current.status.value,
            )

        warnings = []
        if len(travelers) != current.pax_count:
            warning = (
                f"Traveler count {len(travelers)} does not match pax count {current.pax_count}"
            )
            logger.warning(f"Quote {current.id}: {warning}")
            warnings.append(warning)

        # Expected row_version comes from the caller's copy; a stale read fails here
        booked_quote = current.model_copy(update={
            "status": QuoteStatus.BOOKED,
            "is_locked": True,
            "messages": [*current.messages, Message.system("Quote converted to booking.")],
            "updated_at": utcnow(),
        })
        booked_quote = await self.quotes.save(booked_quote, expected_version=quote.row_version)

        total = billable_amount(current)
        booking = Booking(
            id=f"bk_{uuid.uuid4().hex[:12]}",
            quote_id=current.id,
            unique_ref_no=current.unique_ref_no,
            currency=current.currency,
            share_token=current.share_token,
            agent_id=current.agent_id,
            agent_name=current.agent_name,
            staff_id=current.staff_id,
            company_id=self.company_id,
            pax_count=current.pax_count,
            travelers=[t.clone() for t in travelers],
            itinerary=clone_itinerary(current.itinerary),
            net_cost=current.cost,
            selling_price=total,
            total_amount=total,
            advance_amount=advance_for(total, self.advance_percent),
            operator=OperatorAssignment(),
            messages=[Message.system("Booking requested.")],
            warnings=warnings,
        )
        try:
            saved = await self.bookings.save(booking, expected_version=None)
        except Exception:
            await self._restore_quote(current, booked_quote)
            raise

        await self.audit.record(
            EntityType.QUOTE, booked_quote.id, "QUOTE_BOOKED", actor,
            description=f"Converted to booking {saved.id}",
            previous_value={"status": current.status.value},
            new_value={"status": booked_quote.status.value},
        )
        await self.audit.record(
            EntityType.BOOKING, saved.id, "BOOKING_CREATED", actor,
            description=f"Booking created from quote {current.id}",
            new_value={
                "status": saved.status.value,
                "total_amount": str(saved.total_amount),
                "advance_amount": str(saved.advance_amount),
            },
        )
        await self.notifications.send_booking_requested(saved)
        logger.info(f"Booking {saved.id} created from quote {current.id} by {actor.id}")
        return saved

    async def _restore_quote(self, original: Quote, booked: Quote) -> None:
        restored = original.model_copy(update={"updated_at": utcnow()})
        try:
            await self.quotes.save(restored, expected_version=booked.row_version)
        except ConcurrentModification:
            logger.error(f"Quote {original.id} is BOOKED without a booking; it changed before it could be restored")
            return
        logger.warning(f"Booking for quote {original.id} was not stored; quote restored to {original.status.value}")
