"""Currency conversion against a current-rate snapshot (no historical rates)."""

from decimal import Decimal

from quotedesk.data.currency import DEFAULT_RATES_PER_USD
from quotedesk.errors import CurrencyRateMissing
from quotedesk.interfaces import CurrencyRateProvider


class StaticRateProvider(CurrencyRateProvider):
    """Rates from a table quoted against one base currency (1 base = X currency)."""

    def __init__(self, rates_per_base: dict[str, Decimal] | None = None, base_currency: str = "USD"):
        table = dict(DEFAULT_RATES_PER_USD if rates_per_base is None else rates_per_base)
        table.setdefault(base_currency, Decimal("1"))
        self.base_currency = base_currency
        self._rates = {code.upper(): Decimal(str(r)) for code, r in table.items()}

    def rate(self, from_currency: str, to_currency: str) -> Decimal:
        from_rate = self._rates.get(from_currency.upper())
        to_rate = self._rates.get(to_currency.upper())
        if not from_rate or not to_rate:
            raise CurrencyRateMissing(
                f"Exchange rate not found for {from_currency} or {to_currency}",
                from_currency=from_currency,
                to_currency=to_currency,
            )
        # from -> base -> to
        return to_rate / from_rate

    def currencies(self) -> list[str]:
        return sorted(self._rates)


class CurrencyConverter:
    def __init__(self, provider: CurrencyRateProvider):
        self.provider = provider

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        """Convert at full precision. Same-currency amounts pass through untouched."""
        if from_currency.upper() == to_currency.upper():
            return amount
        return amount * self.provider.rate(from_currency, to_currency)
