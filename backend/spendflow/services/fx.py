"""Simple FX conversion service for displaying and normalizing expense amounts.

Conversion never changes the amount stored on an expense; it is used for
display and for comparing amounts against workflow tier thresholds.
"""
from decimal import ROUND_HALF_UP, Decimal

from spendflow.core.errors import UnsupportedCurrency

# Static mid-market rates: USD value of one unit (replace with live API in production)
RATES: dict[str, Decimal] = {
    "USD": Decimal("1.0"),
    "EUR": Decimal("1.08"),
    "GBP": Decimal("1.27"),
    "CAD": Decimal("0.74"),
    "AUD": Decimal("0.65"),
    "NZD": Decimal("0.60"),
    "JPY": Decimal("0.0067"),
    "CNY": Decimal("0.14"),
    "INR": Decimal("0.012"),
    "MXN": Decimal("0.058"),
    "CHF": Decimal("1.13"),
    "SEK": Decimal("0.095"),
    "NOK": Decimal("0.094"),
    "SGD": Decimal("0.74"),
    "HKD": Decimal("0.128"),
    "ZAR": Decimal("0.054"),
    "BRL": Decimal("0.20"),
    "KRW": Decimal("0.00075"),
}

SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "INR": "₹",
    "AUD": "A$",
    "CAD": "C$",
    "NZD": "NZ$",
}

CENT = Decimal("0.01")


def supported_currencies() -> list[str]:
    return sorted(RATES)


def is_supported(currency: str | None) -> bool:
    return bool(currency) and currency.upper() in RATES


def _rate(currency: str) -> Decimal:
    rate = RATES.get(currency.upper()) if currency else None
    if rate is None:
        raise UnsupportedCurrency(f"Unsupported currency: {currency}")
    return rate


def convert(amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
    """Convert ``amount`` between two supported currencies, rounded to cents."""
    amount = Decimal(str(amount))
    from_rate = _rate(from_currency)
    to_rate = _rate(to_currency)
    if from_currency.upper() == to_currency.upper():
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    return (amount * from_rate / to_rate).quantize(CENT, rounding=ROUND_HALF_UP)


def exchange_rate(from_currency: str, to_currency: str) -> Decimal:
    return _rate(from_currency) / _rate(to_currency)


def format_amount(amount: Decimal, currency: str) -> str:
    symbol = SYMBOLS.get(currency.upper())
    value = f"{Decimal(str(amount)):,.2f}"
    return f"{symbol}{value}" if symbol else f"{value} {currency.upper()}"
