"""Pricing engine — rolls itinerary service costs up into a PricingBreakdown.

Flow:
  1. Net cost: every non-reference service, converted to the quote currency
  2. + Company markup (percent of net cost)
  3. + Agent markup (percent of net cost, or a flat amount in quote currency)
  4. + GST on the whole subtotal, markups included
  = Final price

Components keep full precision. Ceil rounding happens once, at the sale
price, according to the rules' round-off unit.
"""

import logging
from decimal import ROUND_CEILING, Decimal

from quotedesk.errors import ValidationError
from quotedesk.schemas.quote import (
    AgentMarkupMode,
    ItineraryItem,
    PricingBreakdown,
    PricingRules,
    Quote,
    RoundOff,
)
from quotedesk.services.currency_converter import CurrencyConverter

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
ZERO = Decimal("0")
DUST = Decimal("0.01")

# EXACT still lands on a whole unit: the sale price never carries fractions
ROUND_OFF_UNITS: dict[RoundOff, Decimal] = {
    RoundOff.EXACT: Decimal("1"),
    RoundOff.NEAREST_1: Decimal("1"),
    RoundOff.NEAREST_10: Decimal("10"),
    RoundOff.NEAREST_100: Decimal("100"),
}


def apply_round_off(amount: Decimal, rule: RoundOff) -> Decimal:
    """Ceil to the rule's unit, e.g. NEAREST_10: 452 -> 460.

    Dust amounts up to one cent become zero instead of being rounded up to a unit.
    """
    if amount <= DUST:
        return ZERO
    unit = ROUND_OFF_UNITS[rule]
    return (amount / unit).to_integral_value(rounding=ROUND_CEILING) * unit


def billable_amount(quote: Quote) -> Decimal:
    """The amount a quote is sold for. Selling price wins, then the B2B price."""
    if quote.selling_price > ZERO:
        return quote.selling_price
    if quote.price > ZERO:
        return quote.price
    return ZERO


class PricingEngine:
    def __init__(self, converter: CurrencyConverter):
        self.converter = converter

    def net_cost(self, itinerary: list[ItineraryItem], quote_currency: str) -> tuple[Decimal, list[str]]:
        """Sum of non-reference service costs, plus the names of excluded reference items."""
        total = ZERO
        excluded = []
        for item in itinerary:
            for service in item.services:
                if service.is_ref:
                    excluded.append(f"Day {item.day}: {service.name}")
                    continue
                line_cost = service.cost * service.quantity
                total += self.converter.convert(line_cost, service.currency, quote_currency)
        return total, excluded

    def compute_breakdown(
        self,
        itinerary: list[ItineraryItem],
        rules: PricingRules,
        pax_count: int,
        quote_currency: str,
    ) -> PricingBreakdown:
        if pax_count < 1:
            raise ValidationError("Pax count must be at least 1", pax_count=pax_count)

        net_cost, excluded = self.net_cost(itinerary, quote_currency)
        company_markup = net_cost * rules.company_markup_percent / HUNDRED

        if rules.agent_markup_mode == AgentMarkupMode.FLAT:
            agent_markup = rules.agent_markup_value
        else:
            agent_markup = net_cost * rules.agent_markup_value / HUNDRED

        gst_amount = (net_cost + company_markup + agent_markup) * rules.gst_percent / HUNDRED
        final_price = net_cost + company_markup + agent_markup + gst_amount
        b2b_price = (net_cost + company_markup) * (HUNDRED + rules.gst_percent) / HUNDRED

        if excluded:
            logger.debug(f"{len(excluded)} reference-only services excluded from net cost")

        return PricingBreakdown(
            currency=quote_currency,
            pax_count=pax_count,
            net_cost=net_cost,
            company_markup_value=company_markup,
            agent_markup_value=agent_markup,
            gst_amount=gst_amount,
            final_price=final_price,
            per_person_price=final_price / pax_count,
            b2b_price=b2b_price,
            sale_price=apply_round_off(final_price, rules.round_off),
            excluded_services=excluded,
        )

    def price_quote(self, quote: Quote) -> Quote:
        """Return a copy of the quote with breakdown and price fields recomputed."""
        breakdown = self.compute_breakdown(
            quote.itinerary, quote.pricing_rules, quote.pax_count, quote.currency
        )
        return apply_to_quote(quote, breakdown)


def apply_to_quote(quote: Quote, breakdown: PricingBreakdown) -> Quote:
    return quote.model_copy(update={
        "breakdown": breakdown,
        "cost": breakdown.net_cost,
        "price": breakdown.b2b_price,
        "selling_price": breakdown.sale_price,
    })
