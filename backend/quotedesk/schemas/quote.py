import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from quotedesk.schemas.common import SYSTEM_SENDER_ID, Record, Role, new_share_token, utcnow


class QuoteStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"


class ServiceType(str, Enum):
    HOTEL = "HOTEL"
    ACTIVITY = "ACTIVITY"
    TRANSFER = "TRANSFER"
    CUSTOM = "CUSTOM"
    VISA = "VISA"
    OTHER = "OTHER"


class AgentMarkupMode(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FLAT = "FLAT"


class RoundOff(str, Enum):
    EXACT = "EXACT"
    NEAREST_1 = "NEAREST_1"
    NEAREST_10 = "NEAREST_10"
    NEAREST_100 = "NEAREST_100"


class OperatorStatus(str, Enum):
    UNASSIGNED = "UNASSIGNED"
    ASSIGNED = "ASSIGNED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"


class OperatorPriceMode(str, Enum):
    NET_COST = "NET_COST"  # operator sees the net cost
    FIXED_PRICE = "FIXED_PRICE"  # operator sees only an agreed price


class Service(BaseModel):
    type: ServiceType
    name: str
    cost: Decimal = Decimal("0")
    currency: str
    quantity: int = Field(default=1, ge=1)
    is_ref: bool = False  # reference only, excluded from totals

    def clone(self) -> "Service":
        return Service(
            type=self.type,
            name=self.name,
            cost=self.cost,
            currency=self.currency,
            quantity=self.quantity,
            is_ref=self.is_ref,
        )


class ItineraryItem(BaseModel):
    day: int = Field(ge=1)
    title: str
    description: str = ""
    services: list[Service] = Field(default_factory=list)
    inclusions: list[str] = Field(default_factory=list)

    def clone(self) -> "ItineraryItem":
        return ItineraryItem(
            day=self.day,
            title=self.title,
            description=self.description,
            services=[s.clone() for s in self.services],
            inclusions=list(self.inclusions),
        )


def clone_itinerary(itinerary: list[ItineraryItem]) -> list[ItineraryItem]:
    return [item.clone() for item in itinerary]


class PricingRules(BaseModel):
    company_markup_percent: Decimal = Decimal("0")
    agent_markup_mode: AgentMarkupMode = AgentMarkupMode.PERCENTAGE
    agent_markup_value: Decimal = Decimal("0")
    gst_percent: Decimal = Decimal("0")
    round_off: RoundOff = RoundOff.EXACT

    model_config = ConfigDict(frozen=True)


class PricingBreakdown(BaseModel):
    """Derived pricing figures. Always recomputed from the itinerary, never edited."""

    currency: str
    pax_count: int
    net_cost: Decimal
    company_markup_value: Decimal
    agent_markup_value: Decimal
    gst_amount: Decimal
    final_price: Decimal
    per_person_price: Decimal
    b2b_price: Decimal
    sale_price: Decimal
    excluded_services: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Message(BaseModel):
    id: str = Field(default_factory=lambda: f"msg_{uuid.uuid4().hex[:12]}")
    sender_id: str
    sender_name: str
    sender_role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    is_system: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(
            sender_id=SYSTEM_SENDER_ID,
            sender_name="System",
            sender_role=Role.ADMIN,
            content=content,
            is_system=True,
        )


class OperatorAssignment(BaseModel):
    status: OperatorStatus = OperatorStatus.UNASSIGNED
    operator_id: str | None = None
    operator_name: str | None = None
    price: Decimal | None = None  # fixed operator price, decoupled from cost
    net_cost_visible: bool = False
    decline_reason: str | None = None
    instruction: str | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None

    model_config = ConfigDict(frozen=True)


class QuoteSnapshot(BaseModel):
    """Contractual itinerary and pricing frozen at approval."""

    itinerary: list[ItineraryItem]
    breakdown: PricingBreakdown | None
    approved_by: str
    approved_at: datetime


class Quote(Record):
    unique_ref_no: str
    version: int = Field(default=1, ge=1)
    is_locked: bool = False
    previous_version_id: str | None = None
    status: QuoteStatus = QuoteStatus.DRAFT
    # Public link secret, shared by every version of a lineage
    share_token: str = Field(default_factory=new_share_token)

    agent_id: str
    agent_name: str
    staff_id: str | None = None

    destination: str = ""
    travel_date: date | None = None
    pax_count: int = Field(default=1, ge=1)
    lead_guest_name: str | None = None

    currency: str
    itinerary: list[ItineraryItem] = Field(default_factory=list)
    pricing_rules: PricingRules = Field(default_factory=PricingRules)
    breakdown: PricingBreakdown | None = None
    cost: Decimal = Decimal("0")  # net supplier cost
    price: Decimal = Decimal("0")  # B2B price
    selling_price: Decimal = Decimal("0")  # B2B price + agent markup

    operator: OperatorAssignment = Field(default_factory=OperatorAssignment)
    messages: list[Message] = Field(default_factory=list)

    approved_snapshot: QuoteSnapshot | None = None
    cancellation_reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class QuoteUpdate(BaseModel):
    """Direct edits to an unlocked quote. Unset fields are left alone."""

    destination: str | None = None
    travel_date: date | None = None
    pax_count: int | None = Field(default=None, ge=1)
    lead_guest_name: str | None = None
    currency: str | None = None
    staff_id: str | None = None
    itinerary: list[ItineraryItem] | None = None
    pricing_rules: PricingRules | None = None
