from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from quotedesk.schemas.common import Record, new_share_token, utcnow
from quotedesk.schemas.quote import ItineraryItem, Message, OperatorAssignment


class BookingStatus(str, Enum):
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLATION_REQUESTED = "CANCELLATION_REQUESTED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class PaymentType(str, Enum):
    ADVANCE = "ADVANCE"
    FULL = "FULL"


class PaymentMode(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    UPI = "UPI"
    CASH = "CASH"
    ONLINE = "ONLINE"
    WALLET = "WALLET"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    ADVANCE_PAID = "ADVANCE_PAID"
    PAID_IN_FULL = "PAID_IN_FULL"


class TravelerType(str, Enum):
    ADULT = "ADULT"
    CHILD = "CHILD"
    INFANT = "INFANT"


class Traveler(BaseModel):
    title: str = ""
    first_name: str
    last_name: str
    type: TravelerType = TravelerType.ADULT
    passport_no: str | None = None
    age: int | None = None

    def clone(self) -> "Traveler":
        return Traveler(
            title=self.title,
            first_name=self.first_name,
            last_name=self.last_name,
            type=self.type,
            passport_no=self.passport_no,
            age=self.age,
        )


class DriverDetails(BaseModel):
    name: str
    phone: str
    vehicle_model: str = ""
    vehicle_number: str = ""


class PaymentEntry(BaseModel):
    id: str  # payment id, the idempotency key
    amount: Decimal
    type: PaymentType
    mode: PaymentMode
    reference: str = ""
    receipt_number: str
    recorded_by: str
    company_id: str
    recorded_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class CreditNote(BaseModel):
    """Overpayment excess held for reconciliation."""

    payment_id: str
    amount: Decimal
    note: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)


class CancellationDetails(BaseModel):
    requested_by: str
    requested_at: datetime
    reason: str
    previous_status: BookingStatus
    penalty_amount: Decimal | None = None
    refund_amount: Decimal | None = None
    admin_note: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None


@dataclass(frozen=True)
class LedgerTotals:
    received: Decimal
    paid: Decimal
    balance: Decimal
    credit: Decimal


def fold_payments(payments: list[PaymentEntry], total_amount: Decimal) -> LedgerTotals:
    """Derive paid/balance/credit from the ledger. Each payment id counts once."""
    unique = {p.id: p for p in payments}
    received = sum((p.amount for p in unique.values()), Decimal("0"))
    paid = min(received, total_amount)
    return LedgerTotals(
        received=received,
        paid=paid,
        balance=max(total_amount - paid, Decimal("0")),
        credit=received - paid,
    )


class Booking(Record):
    quote_id: str
    unique_ref_no: str
    status: BookingStatus = BookingStatus.REQUESTED
    currency: str
    share_token: str = Field(default_factory=new_share_token)

    agent_id: str
    agent_name: str
    staff_id: str | None = None
    company_id: str

    pax_count: int = Field(default=1, ge=1)
    travelers: list[Traveler] = Field(default_factory=list)
    itinerary: list[ItineraryItem] = Field(default_factory=list)

    net_cost: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    total_amount: Decimal
    advance_amount: Decimal
    payments: list[PaymentEntry] = Field(default_factory=list)
    credit_notes: list[CreditNote] = Field(default_factory=list)

    operator: OperatorAssignment = Field(default_factory=OperatorAssignment)
    driver_details: DriverDetails | None = None
    messages: list[Message] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    cancellation: CancellationDetails | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def ledger(self) -> LedgerTotals:
        return fold_payments(self.payments, self.total_amount)

    @computed_field
    @property
    def paid_amount(self) -> Decimal:
        return self.ledger().paid

    @computed_field
    @property
    def balance_amount(self) -> Decimal:
        return self.ledger().balance

    @computed_field
    @property
    def payment_status(self) -> PaymentStatus:
        paid = self.ledger().paid
        if paid >= self.total_amount:
            return PaymentStatus.PAID_IN_FULL
        if paid >= self.advance_amount and paid > 0:
            return PaymentStatus.ADVANCE_PAID
        if paid > 0:
            return PaymentStatus.PARTIALLY_PAID
        return PaymentStatus.PENDING

    def has_payment(self, payment_id: str) -> bool:
        return any(p.id == payment_id for p in self.payments)
