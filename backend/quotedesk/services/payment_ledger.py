"""Payment ledger — records verified payments against a booking.

Paid, balance and credit are always folded from the payment list. A payment
id is recorded once; replaying it is a no-op. Payments above the total are
accepted and the excess is kept as a credit note.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from quotedesk.errors import (
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    PaymentVerificationFailed,
    ValidationError,
)
from quotedesk.interfaces import PaymentVerifier, Repository
from quotedesk.schemas.account import Company
from quotedesk.schemas.audit import EntityType
from quotedesk.schemas.booking import (
    Booking,
    BookingStatus,
    CreditNote,
    PaymentEntry,
    PaymentMode,
    PaymentType,
)
from quotedesk.schemas.common import Actor, utcnow
from quotedesk.schemas.quote import Message
from quotedesk.services import permissions
from quotedesk.services.audit_recorder import AuditRecorder
from quotedesk.services.notification_service import NotificationService
from quotedesk.services.permissions import Action
from quotedesk.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

CLOSED_STATUSES = {BookingStatus.CANCELLED, BookingStatus.REJECTED}


@dataclass
class PaymentResult:
    booking: Booking
    entry: PaymentEntry
    applied: bool  # False when the payment id had already been recorded
    credit_note: CreditNote | None = None


class PaymentLedger:
    def __init__(
        self,
        bookings: Repository[Booking],
        companies: Repository[Company],
        verifier: PaymentVerifier,
        wallet: WalletService,
        audit: AuditRecorder,
        notifications: NotificationService,
        default_company_name: str = "QuoteDesk Travel",
        receipt_prefix: str = "RCPT-",
    ):
        self.bookings = bookings
        self.companies = companies
        self.verifier = verifier
        self.wallet = wallet
        self.audit = audit
        self.notifications = notifications
        self.default_company_name = default_company_name
        self.receipt_prefix = receipt_prefix

    async def record_payment(
        self,
        booking: Booking,
        actor: Actor,
        payment_id: str,
        amount: Decimal,
        mode: PaymentMode,
        reference: str = "",
    ) -> PaymentResult:
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", amount=str(amount))
        if not payment_id:
            raise ValidationError("A payment id is required")

        current = await self.bookings.get(booking.id)
        if current is None:
            raise NotFound(f"Booking {booking.id} not found", booking_id=booking.id)
        permissions.require(actor, Action.RECORD_PAYMENT, current)

        existing = next((p for p in current.payments if p.id == payment_id), None)
        if existing is not None:
            if existing.amount != amount:
                raise ValidationError(
                    f"Payment {payment_id} was already recorded with a different amount",
                    payment_id=payment_id,
                    recorded_amount=str(existing.amount),
                    amount=str(amount),
                )
            logger.info(f"Payment {payment_id} already recorded on {current.id}, skipping")
            return PaymentResult(booking=current, entry=existing, applied=False)

        if current.row_version != booking.row_version:
            raise ConcurrentModification(
                f"Booking {booking.id} changed since it was read; reload and retry",
                booking_id=booking.id,
            )
        if current.status in CLOSED_STATUSES:
            raise InvalidStateTransition(
                f"Cannot record a payment on a {current.status.value} booking",
                booking_id=current.id,
                status=current.status.value,
            )

        verified = await self.verifier.verify(payment_id, amount, current.currency)
        if not verified:
            raise PaymentVerificationFailed(
                f"Payment {payment_id} could not be verified",
                payment_id=payment_id,
                amount=str(amount),
            )

        if mode == PaymentMode.WALLET:
            await self.wallet.debit(current.agent_id, amount, f"{current.unique_ref_no} / {payment_id}", actor)
        try:
            saved, entry, credit_note = await self._append_payment(
                current, actor, payment_id, amount, mode, reference
            )
        except Exception:
            # Nothing was recorded, so the wallet gets its money back
            if mode == PaymentMode.WALLET:
                await self.wallet.reverse_debit(
                    current.agent_id, amount, f"{current.unique_ref_no} / {payment_id}", actor
                )
            raise

        await self.audit.record(
            EntityType.PAYMENT, saved.id, "PAYMENT_RECORDED", actor,
            description=f"{entry.type.value} {amount} via {mode.value} ({entry.receipt_number})",
            previous_value={
                "paid_amount": str(current.ledger().paid),
                "balance_amount": str(current.ledger().balance),
            },
            new_value={
                "paid_amount": str(saved.paid_amount),
                "balance_amount": str(saved.balance_amount),
                "credit": str(saved.ledger().credit),
            },
        )
        await self.notifications.send_payment_received(saved, entry)
        logger.info(f"Payment {payment_id} of {amount} recorded on booking {saved.id}")
        return PaymentResult(booking=saved, entry=entry, applied=True, credit_note=credit_note)

    async def _append_payment(
        self,
        current: Booking,
        actor: Actor,
        payment_id: str,
        amount: Decimal,
        mode: PaymentMode,
        reference: str,
    ) -> tuple[Booking, PaymentEntry, CreditNote | None]:
        before = current.ledger()
        payment_type = PaymentType.FULL if before.received + amount >= current.total_amount else PaymentType.ADVANCE
        issuer = await self._take_receipt_number(current.company_id)
        seq = issuer.next_receipt_number
        receipt_number = f"{issuer.receipt_prefix}{utcnow().year}-{seq:04d}"
        entry = PaymentEntry(
            id=payment_id,
            amount=amount,
            type=payment_type,
            mode=mode,
            reference=reference,
            receipt_number=receipt_number,
            recorded_by=actor.id,
            company_id=current.company_id,
        )

        credit_note = None
        credit_notes = list(current.credit_notes)
        updated = current.model_copy(update={"payments": [*current.payments, entry]})
        excess = updated.ledger().credit - before.credit
        if excess > 0:
            credit_note = CreditNote(
                payment_id=payment_id,
                amount=excess,
                note=f"Overpayment of {excess} on {current.unique_ref_no}",
            )
            credit_notes.append(credit_note)
            logger.warning(f"Booking {current.id} overpaid by {excess}; credit note raised")

        updated = updated.model_copy(update={
            "credit_notes": credit_notes,
            "messages": [*current.messages, Message.system(f"Payment received ({receipt_number}).")],
            "updated_at": utcnow(),
        })
        try:
            saved = await self.bookings.save(updated, expected_version=current.row_version)
        except Exception:
            await self._release_receipt_number(current.company_id, seq)
            raise
        return saved, entry, credit_note

    async def _take_receipt_number(self, company_id: str) -> Company:
        """Advance the company's receipt sequence; returns the company as it was before."""
        company = await self.companies.get(company_id)
        if company is None:
            company = await self.companies.save(
                Company(id=company_id, name=self.default_company_name, receipt_prefix=self.receipt_prefix),
                expected_version=None,
            )
        seq = company.next_receipt_number
        await self.companies.save(
            company.model_copy(update={"next_receipt_number": seq + 1}),
            expected_version=company.row_version,
        )
        return company

    async def _release_receipt_number(self, company_id: str, seq: int) -> None:
        """Hand an unused receipt number back, unless a later one has been issued since."""
        company = await self.companies.get(company_id)
        if company is None or company.next_receipt_number != seq + 1:
            logger.warning(f"Receipt number {seq} of {company_id} was not used; the sequence has a gap")
            return
        try:
            await self.companies.save(
                company.model_copy(update={"next_receipt_number": seq}),
                expected_version=company.row_version,
            )
        except ConcurrentModification:
            logger.warning(f"Receipt number {seq} of {company_id} was not used; the sequence has a gap")
