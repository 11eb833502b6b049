"""Service container — wires adapters and services once per process.

Nothing in the engine holds records in module globals; everything a service
needs is passed in here, so tests can swap any collaborator.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncEngine

from quotedesk.config import Settings
from quotedesk.data.currency import DEFAULT_RATES_PER_USD
from quotedesk.database import build_engine, build_session_factory
from quotedesk.interfaces import AuditSink, Notifier, PaymentVerifier, Repository
from quotedesk.repositories.memory import InMemoryAuditSink, InMemoryNotifier, InMemoryRepository
from quotedesk.repositories.sql import SqlAuditSink, SqlNotifier, SqlRepository
from quotedesk.schemas.account import AgentAccount, Company
from quotedesk.schemas.booking import Booking
from quotedesk.schemas.quote import AgentMarkupMode, PricingRules, Quote, RoundOff
from quotedesk.services.audit_recorder import AuditRecorder
from quotedesk.services.booking_converter import BookingConverter
from quotedesk.services.booking_service import BookingService
from quotedesk.services.currency_converter import CurrencyConverter, StaticRateProvider
from quotedesk.services.notification_service import NotificationService
from quotedesk.services.operator_assignment import OperatorAssignmentWorkflow
from quotedesk.services.payment_ledger import PaymentLedger
from quotedesk.services.payment_verifier import HttpPaymentVerifier, OfflinePaymentVerifier
from quotedesk.services.pricing_engine import PricingEngine
from quotedesk.services.quote_lifecycle import QuoteLifecycle
from quotedesk.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    quotes_repo: Repository[Quote]
    bookings_repo: Repository[Booking]
    audit_sink: AuditSink
    notifier: Notifier
    pricing: PricingEngine
    quotes: QuoteLifecycle
    converter: BookingConverter
    bookings: BookingService
    payments: PaymentLedger
    wallet: WalletService
    operators: OperatorAssignmentWorkflow
    engine: AsyncEngine | None = field(default=None)

    async def close(self) -> None:
        if isinstance(self.payments.verifier, HttpPaymentVerifier):
            await self.payments.verifier.close()
        if self.engine is not None:
            await self.engine.dispose()


def default_pricing_rules(settings: Settings) -> PricingRules:
    return PricingRules(
        company_markup_percent=settings.company_markup_percent,
        agent_markup_mode=AgentMarkupMode(settings.agent_markup_mode.upper()),
        agent_markup_value=settings.agent_markup_value,
        gst_percent=settings.gst_percent,
        round_off=RoundOff(settings.round_off.upper()),
    )


def build_container(settings: Settings, verifier: PaymentVerifier | None = None) -> Container:
    engine = None
    if settings.storage_backend == "memory":
        quotes_repo = InMemoryRepository[Quote]("quote")
        bookings_repo = InMemoryRepository[Booking]("booking")
        companies_repo = InMemoryRepository[Company]("company")
        accounts_repo = InMemoryRepository[AgentAccount]("agent_account")
        audit_sink: AuditSink = InMemoryAuditSink()
        notifier: Notifier = InMemoryNotifier()
    else:
        engine = build_engine(settings.database_url)
        session_factory = build_session_factory(engine)
        quotes_repo = SqlRepository(session_factory, "quote", Quote)
        bookings_repo = SqlRepository(session_factory, "booking", Booking)
        companies_repo = SqlRepository(session_factory, "company", Company)
        accounts_repo = SqlRepository(session_factory, "agent_account", AgentAccount)
        audit_sink = SqlAuditSink(session_factory)
        notifier = SqlNotifier(session_factory)

    if verifier is None:
        if settings.payment_verifier_url:
            verifier = HttpPaymentVerifier(settings.payment_verifier_url, settings.payment_verifier_timeout)
        else:
            verifier = OfflinePaymentVerifier()

    # Overrides layer on the bundled table, which is quoted in USD
    base_table = DEFAULT_RATES_PER_USD if settings.base_currency.upper() == "USD" else {}
    rates = StaticRateProvider({**base_table, **settings.exchange_rates}, settings.base_currency)
    pricing = PricingEngine(CurrencyConverter(rates))
    audit = AuditRecorder(audit_sink)
    notifications = NotificationService(notifier, settings.approver_id_list)
    wallet = WalletService(accounts_repo, audit)

    logger.info(f"Container built with {settings.storage_backend} storage")
    return Container(
        settings=settings,
        quotes_repo=quotes_repo,
        bookings_repo=bookings_repo,
        audit_sink=audit_sink,
        notifier=notifier,
        pricing=pricing,
        quotes=QuoteLifecycle(
            quotes_repo, pricing, audit, notifications,
            default_rules=default_pricing_rules(settings),
            default_currency=settings.default_quote_currency,
        ),
        converter=BookingConverter(
            quotes_repo, bookings_repo, audit, notifications,
            advance_percent=settings.advance_percent,
            company_id=settings.default_company_id,
        ),
        bookings=BookingService(bookings_repo, audit, notifications),
        payments=PaymentLedger(
            bookings_repo, companies_repo, verifier, wallet, audit, notifications,
            default_company_name=settings.default_company_name,
            receipt_prefix=settings.receipt_prefix,
        ),
        wallet=wallet,
        operators=OperatorAssignmentWorkflow(quotes_repo, bookings_repo, audit, notifications),
        engine=engine,
    )
