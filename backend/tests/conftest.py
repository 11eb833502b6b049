from decimal import Decimal

import pytest

from quotedesk.config import Settings
from quotedesk.container import build_container
from quotedesk.interfaces import Notifier, PaymentVerifier
from quotedesk.schemas.booking import Traveler
from quotedesk.schemas.common import Actor, Role
from quotedesk.schemas.quote import (
    AgentMarkupMode,
    ItineraryItem,
    PricingRules,
    RoundOff,
    Service,
    ServiceType,
)


class FakeVerifier(PaymentVerifier):
    def __init__(self, approve: bool = True):
        self.approve = approve
        self.calls: list[tuple[str, Decimal, str]] = []

    async def verify(self, payment_id: str, expected_amount: Decimal, currency: str) -> bool:
        self.calls.append((payment_id, expected_amount, currency))
        return self.approve


class FailingNotifier(Notifier):
    async def notify(self, recipient_ids, title, body, link=None):
        raise RuntimeError("smtp down")


def make_itinerary(cost="1000", currency="INR", ref_cost=None) -> list[ItineraryItem]:
    services = [Service(type=ServiceType.HOTEL, name="Sea View Resort", cost=Decimal(cost), currency=currency)]
    if ref_cost is not None:
        services.append(Service(
            type=ServiceType.ACTIVITY, name="Optional Dhow Cruise",
            cost=Decimal(ref_cost), currency=currency, is_ref=True,
        ))
    return [ItineraryItem(day=1, title="Arrival", services=services, inclusions=["Breakfast"])]


SIMPLE_RULES = PricingRules(
    company_markup_percent=Decimal("10"),
    agent_markup_mode=AgentMarkupMode.PERCENTAGE,
    agent_markup_value=Decimal("10"),
    gst_percent=Decimal("0"),
    round_off=RoundOff.NEAREST_1,
)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin_1", name="Asha Admin", role=Role.ADMIN)


@pytest.fixture
def staff() -> Actor:
    return Actor(id="staff_1", name="Sam Staff", role=Role.STAFF)


@pytest.fixture
def agent() -> Actor:
    return Actor(id="agent_1", name="Priya Travels", role=Role.AGENT)


@pytest.fixture
def other_agent() -> Actor:
    return Actor(id="agent_2", name="Globe Holidays", role=Role.AGENT)


@pytest.fixture
def operator() -> Actor:
    return Actor(id="op_1", name="Desert Safari DMC", role=Role.OPERATOR)


@pytest.fixture
def other_operator() -> Actor:
    return Actor(id="op_2", name="Coastal Tours", role=Role.OPERATOR)


@pytest.fixture
def client() -> Actor:
    return Actor.public_client()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        storage_backend="memory",
        approval_notify_ids="staff_1",
        default_quote_currency="INR",
        log_dir=str(tmp_path / "logs"),
        _env_file=None,
    )


@pytest.fixture
def container(settings, verifier):
    return build_container(settings, verifier=verifier)


@pytest.fixture
async def draft_quote(container, agent):
    return await container.quotes.create_quote(
        agent, destination="Dubai", pax_count=2,
        itinerary=make_itinerary(), pricing_rules=SIMPLE_RULES,
    )


@pytest.fixture
async def approved_quote(container, draft_quote, agent, staff):
    submitted = await container.quotes.submit(draft_quote, agent)
    return await container.quotes.approve(submitted, staff)


@pytest.fixture
async def booking(container, approved_quote, agent):
    travelers = [Traveler(first_name="Ravi", last_name="Kumar"), Traveler(first_name="Meera", last_name="Kumar")]
    return await container.converter.from_quote(approved_quote, travelers, agent)
