"""Quote lifecycle — the Draft → Submitted → Approved(locked) → Booked state machine.

Cancellation is terminal from Draft, Submitted or Approved. A locked quote
is never edited in place: its substance changes only through a revision,
a new record in the same lineage (same reference number, version + 1).
Every write is a compare-and-swap on the quote's row_version.
"""

import logging
import uuid
from datetime import date
from typing import Any

from quotedesk.errors import (
    ConcurrentModification,
    InvalidStateTransition,
    LockedQuoteMutation,
    NotFound,
    RevisionNotAllowed,
    ValidationError,
)
from quotedesk.interfaces import Repository
from quotedesk.schemas.audit import EntityType
from quotedesk.schemas.common import Actor, Role, utcnow
from quotedesk.schemas.quote import (
    ItineraryItem,
    Message,
    OperatorAssignment,
    PricingRules,
    Quote,
    QuoteSnapshot,
    QuoteStatus,
    QuoteUpdate,
    clone_itinerary,
)
from quotedesk.services import permissions
from quotedesk.services.audit_recorder import AuditRecorder
from quotedesk.services.notification_service import NotificationService
from quotedesk.services.permissions import Action
from quotedesk.services.pricing_engine import PricingEngine

logger = logging.getLogger(__name__)

REVISABLE_STATUSES = {QuoteStatus.APPROVED, QuoteStatus.BOOKED}
CANCELLABLE_STATUSES = {QuoteStatus.DRAFT, QuoteStatus.SUBMITTED, QuoteStatus.APPROVED}


def quote_id_for(unique_ref_no: str, version: int) -> str:
    """Quote ids are derived from lineage + version, so a version can only be created once."""
    return f"q_{unique_ref_no.lower()}_v{version}"


def new_reference_number() -> str:
    return f"QT-{uuid.uuid4().hex[:8].upper()}"


def _summary(quote: Quote) -> dict[str, Any]:
    return {
        "status": quote.status.value,
        "version": quote.version,
        "is_locked": quote.is_locked,
        "selling_price": str(quote.selling_price),
    }


class QuoteLifecycle:
    def __init__(
        self,
        quotes: Repository[Quote],
        pricing: PricingEngine,
        audit: AuditRecorder,
        notifications: NotificationService,
        default_rules: PricingRules,
        default_currency: str = "INR",
    ):
        self.quotes = quotes
        self.pricing = pricing
        self.audit = audit
        self.notifications = notifications
        self.default_rules = default_rules
        self.default_currency = default_currency

    # ─── Reads ───

    async def get(self, quote_id: str) -> Quote:
        quote = await self.quotes.get(quote_id)
        if quote is None:
            raise NotFound(f"Quote {quote_id} not found", quote_id=quote_id)
        return quote

    async def history(self, unique_ref_no: str) -> list[Quote]:
        """The revision chain of a lineage, oldest first."""
        lineage = await self.quotes.query(lambda q: q.unique_ref_no == unique_ref_no)
        return sorted(lineage, key=lambda q: q.version)

    async def list_for(self, viewer: Actor) -> list[Quote]:
        # Public clients open single shared quotes, never a listing
        if viewer.role == Role.CLIENT:
            return []
        quotes = await self.quotes.query(lambda q: permissions.can(viewer, Action.VIEW, q))
        return sorted(quotes, key=lambda q: q.updated_at, reverse=True)

    # ─── Creation ───

    async def create_quote(
        self,
        actor: Actor,
        destination: str,
        pax_count: int = 1,
        travel_date: date | None = None,
        currency: str | None = None,
        lead_guest_name: str | None = None,
        itinerary: list[ItineraryItem] | None = None,
        pricing_rules: PricingRules | None = None,
        agent: Actor | None = None,
    ) -> Quote:
        permissions.require(actor, Action.CREATE_QUOTE)
        owner = agent or actor
        if owner.role != Role.AGENT:
            raise ValidationError("A quote must belong to an agent", owner_role=owner.role.value)

        ref = new_reference_number()
        quote = Quote(
            id=quote_id_for(ref, 1),
            unique_ref_no=ref,
            agent_id=owner.id,
            agent_name=owner.name,
            staff_id=actor.id if actor.role.is_internal else None,
            destination=destination,
            travel_date=travel_date,
            pax_count=pax_count,
            lead_guest_name=lead_guest_name,
            currency=currency or self.default_currency,
            itinerary=clone_itinerary(itinerary or []),
            pricing_rules=pricing_rules or self.default_rules,
        )
        quote = self.pricing.price_quote(quote)
        saved = await self.quotes.save(quote, expected_version=None)
        await self.audit.record(
            EntityType.QUOTE, saved.id, "QUOTE_CREATED", actor,
            description=f"Quote {ref} created for {owner.name}",
            new_value=_summary(saved),
        )
        logger.info(f"Quote {saved.id} created by {actor.id}")
        return saved

    async def duplicate(self, quote: Quote, actor: Actor) -> Quote:
        """Start a new lineage from any quote: fresh reference number, version 1, Draft."""
        source = await self._current(quote)
        permissions.require(actor, Action.DUPLICATE_QUOTE, source)

        ref = new_reference_number()
        copy = Quote(
            id=quote_id_for(ref, 1),
            unique_ref_no=ref,
            agent_id=source.agent_id,
            agent_name=source.agent_name,
            staff_id=source.staff_id,
            destination=source.destination,
            travel_date=source.travel_date,
            pax_count=source.pax_count,
            lead_guest_name=source.lead_guest_name,
            currency=source.currency,
            itinerary=clone_itinerary(source.itinerary),
            pricing_rules=source.pricing_rules,
            messages=[Message.system(f"Duplicated from {source.unique_ref_no} v{source.version}.")],
        )
        copy = self.pricing.price_quote(copy)
        saved = await self.quotes.save(copy, expected_version=None)
        await self.audit.record(
            EntityType.QUOTE, saved.id, "QUOTE_DUPLICATED", actor,
            description=f"Duplicated from {source.id}",
            new_value=_summary(saved),
        )
        return saved

    # ─── Direct edits ───

    async def update_quote(self, quote: Quote, actor: Actor, changes: QuoteUpdate) -> Quote:
        current = await self._current(quote)
        permissions.require(actor, Action.EDIT_QUOTE, current)
        if current.is_locked:
            raise LockedQuoteMutation(
                f"Quote {current.id} is locked; create a revision to change it",
                quote_id=current.id,
            )
        self._require_status(current, {QuoteStatus.DRAFT}, "edit")

        update: dict[str, Any] = {"updated_at": utcnow()}
        for field_name in ("destination", "travel_date", "pax_count", "lead_guest_name", "currency", "staff_id"):
            value = getattr(changes, field_name)
            if value is not None:
                update[field_name] = value
        if changes.itinerary is not None:
            update["itinerary"] = clone_itinerary(changes.itinerary)
        if changes.pricing_rules is not None:
            update["pricing_rules"] = changes.pricing_rules

        edited = self.pricing.price_quote(current.model_copy(update=update))
        return await self._persist(
            current, edited, actor, "QUOTE_UPDATED",
            f"Quote edited ({', '.join(sorted(k for k in update if k != 'updated_at'))})",
        )

    async def post_message(self, quote: Quote, actor: Actor, content: str) -> Quote:
        """Append a chat message. Messages are not quote substance, so locked quotes accept them."""
        current = await self._current(quote)
        permissions.require(actor, Action.POST_MESSAGE, current)
        if not content.strip():
            raise ValidationError("Message content is required")
        message = Message(
            sender_id=actor.id,
            sender_name=actor.name,
            sender_role=actor.role,
            content=content.strip(),
        )
        updated = current.model_copy(update={"messages": [*current.messages, message]})
        saved = await self.quotes.save(updated, expected_version=current.row_version)
        return saved

    # ─── Transitions ───

    async def submit(self, quote: Quote, actor: Actor) -> Quote:
        current = await self._current(quote)
        permissions.require(actor, Action.SUBMIT_QUOTE, current)
        self._require_status(current, {QuoteStatus.DRAFT}, "submit")

        submitted = current.model_copy(update={
            "status": QuoteStatus.SUBMITTED,
            "messages": [*current.messages, Message.system("Quote submitted for approval.")],
            "updated_at": utcnow(),
        })
        saved = await self._persist(current, submitted, actor, "QUOTE_SUBMITTED", "Submitted for approval")
        await self.notifications.send_approval_request(saved, actor.name)
        return saved

    async def approve(self, quote: Quote, approver: Actor) -> Quote:
        current = await self._current(quote)
        permissions.require(approver, Action.APPROVE_QUOTE, current)
        self._require_status(current, {QuoteStatus.SUBMITTED}, "approve")

        priced = self.pricing.price_quote(current)
        now = utcnow()
        snapshot = QuoteSnapshot(
            itinerary=clone_itinerary(priced.itinerary),
            breakdown=priced.breakdown,
            approved_by=approver.id,
            approved_at=now,
        )
        approved = priced.model_copy(update={
            "status": QuoteStatus.APPROVED,
            "is_locked": True,
            "approved_snapshot": snapshot,
            "messages": [*current.messages, Message.system(f"Quote v{current.version} approved and locked.")],
            "updated_at": now,
        })
        saved = await self._persist(current, approved, approver, "QUOTE_APPROVED", "Approved and locked")
        await self.notifications.send_decision(saved, "approved")
        return saved

    async def reject(self, quote: Quote, actor: Actor, reason: str) -> Quote:
        current = await self._current(quote)
        permissions.require(actor, Action.REJECT_QUOTE, current)
        self._require_status(current, {QuoteStatus.SUBMITTED}, "reject")
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        rejected = current.model_copy(update={
            "status": QuoteStatus.DRAFT,
            "messages": [*current.messages, Message.system(f"Quote returned for changes. Reason: {reason.strip()}")],
            "updated_at": utcnow(),
        })
        saved = await self._persist(current, rejected, actor, "QUOTE_REJECTED", f"Rejected: {reason.strip()}")
        await self.notifications.send_decision(saved, "rejected", reason.strip())
        return saved

    async def cancel(self, quote: Quote, actor: Actor, reason: str) -> Quote:
        current = await self._current(quote)
        permissions.require(actor, Action.CANCEL_QUOTE, current)
        self._require_status(current, CANCELLABLE_STATUSES, "cancel")
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")

        cancelled = current.model_copy(update={
            "status": QuoteStatus.CANCELLED,
            "cancellation_reason": reason.strip(),
            "messages": [*current.messages, Message.system(f"Quote cancelled. Reason: {reason.strip()}")],
            "updated_at": utcnow(),
        })
        saved = await self._persist(current, cancelled, actor, "QUOTE_CANCELLED", f"Cancelled: {reason.strip()}")
        await self.notifications.send_decision(saved, "cancelled", reason.strip())
        return saved

    async def create_revision(self, quote: Quote, actor: Actor) -> Quote:
        """Open a new editable version of a locked quote. The parent is left untouched."""
        parent = await self._current(quote)
        permissions.require(actor, Action.REVISE_QUOTE, parent)
        if not parent.is_locked:
            raise RevisionNotAllowed(
                f"Quote {parent.id} is not locked; edit it directly",
                quote_id=parent.id,
            )
        if parent.status not in REVISABLE_STATUSES:
            raise RevisionNotAllowed(
                f"Cannot revise a {parent.status.value} quote",
                quote_id=parent.id,
                status=parent.status.value,
            )

        lineage = await self.history(parent.unique_ref_no)
        latest = lineage[-1].version if lineage else parent.version
        if parent.version != latest:
            raise RevisionNotAllowed(
                f"Quote {parent.unique_ref_no} already has a newer version (v{latest})",
                quote_id=parent.id,
                latest_version=latest,
            )

        revision = self._build_revision(parent, actor)
        try:
            saved = await self.quotes.save(revision, expected_version=None)
        except ConcurrentModification:
            raise ConcurrentModification(
                f"Version {revision.version} of {parent.unique_ref_no} was created concurrently",
                quote_id=revision.id,
            )
        await self.audit.record(
            EntityType.QUOTE, saved.id, "QUOTE_REVISED", actor,
            description=f"Revision v{saved.version} of {parent.unique_ref_no} from {parent.id}",
            previous_value=_summary(parent),
            new_value=_summary(saved),
        )
        logger.info(f"Quote {parent.unique_ref_no} revised to v{saved.version} by {actor.id}")
        return saved

    # ─── Helpers ───

    def _build_revision(self, parent: Quote, actor: Actor) -> Quote:
        version = parent.version + 1
        revision = Quote(
            id=quote_id_for(parent.unique_ref_no, version),
            unique_ref_no=parent.unique_ref_no,
            version=version,
            is_locked=False,
            previous_version_id=parent.id,
            status=QuoteStatus.DRAFT,
            share_token=parent.share_token,
            agent_id=parent.agent_id,
            agent_name=parent.agent_name,
            staff_id=parent.staff_id,
            destination=parent.destination,
            travel_date=parent.travel_date,
            pax_count=parent.pax_count,
            lead_guest_name=parent.lead_guest_name,
            currency=parent.currency,
            itinerary=clone_itinerary(parent.itinerary),
            pricing_rules=parent.pricing_rules,
            operator=OperatorAssignment(),
            messages=[Message.system(f"Revision v{version} opened from v{parent.version}.")],
        )
        return self.pricing.price_quote(revision)

    async def _current(self, quote: Quote) -> Quote:
        """Load the stored quote and make sure the caller is acting on what it read."""
        current = await self.get(quote.id)
        if current.row_version != quote.row_version:
            raise ConcurrentModification(
                f"Quote {quote.id} changed since it was read; reload and retry",
                quote_id=quote.id,
                expected_version=quote.row_version,
                current_version=current.row_version,
            )
        return current

    @staticmethod
    def _require_status(quote: Quote, allowed: set[QuoteStatus], operation: str) -> None:
        if quote.status not in allowed:
            raise InvalidStateTransition(
                f"Cannot {operation} a quote in status {quote.status.value}",
                quote_id=quote.id,
                status=quote.status.value,
                operation=operation,
            )

    async def _persist(self, before: Quote, after: Quote, actor: Actor, action: str, description: str) -> Quote:
        saved = await self.quotes.save(after, expected_version=before.row_version)
        await self.audit.record(
            EntityType.QUOTE, saved.id, action, actor,
            description=description,
            previous_value=_summary(before),
            new_value=_summary(saved),
        )
        logger.info(f"Quote {saved.id}: {action} ({before.status.value} -> {saved.status.value})")
        return saved
