"""Currency reference data — default rate snapshot, symbols and display formatting."""

from decimal import Decimal

# Rate snapshot quoted against USD: 1 USD = X currency
DEFAULT_RATES_PER_USD: dict[str, Decimal] = {
    "USD": Decimal("1"),
    "INR": Decimal("83.50"),
    "AED": Decimal("3.67"),
    "THB": Decimal("36.50"),
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "SGD": Decimal("1.35"),
}

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$", "INR": "₹", "AED": "AED ", "THB": "฿",
    "EUR": "€", "GBP": "£", "SGD": "S$",
}


def format_price(amount: Decimal, currency: str = "USD") -> str:
    """Format an amount with its currency symbol for display, two decimals."""
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    return f"{symbol}{amount:,.2f}"
