"""Currency formatting for minor-unit (cents) amounts."""

from typing import Optional

# ISO 4217 code -> display symbol. Unknown codes render as "<CODE> ".
SYMBOLS: dict[str, str] = {
    "GBP": "£",
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "NZD": "NZ$",
    "EUR": "€",
    "CHF": "CHF ",
    "SEK": "kr ",
    "NOK": "kr ",
    "DKK": "kr ",
    "JPY": "¥",
    "CNY": "¥",
    "HKD": "HK$",
    "SGD": "S$",
    "AED": "AED ",
    "SAR": "SAR ",
    "INR": "₹",
    "MXN": "MX$",
    "BRL": "R$",
    "ZAR": "R ",
}

# Currencies shown without decimal places
ZERO_DECIMAL = frozenset({"JPY", "CNY"})


def _normalize_code(currency: Optional[str]) -> str:
    return str(currency or "").strip().upper()


def currency_symbol(currency: Optional[str]) -> str:
    """Return the display symbol for an ISO 4217 code, e.g. "GBP" -> "£"."""
    code = _normalize_code(currency)
    return SYMBOLS.get(code, f"{code} ")


def format_currency(cents: Optional[int], currency: Optional[str]) -> str:
    """Format an integer minor-unit amount as a display string.

    Args:
        cents: Amount in the minor unit (cents, pence). Negative values get a
            leading minus sign. None renders as "n/a".
        currency: ISO 4217 code, case-insensitive.

    Returns:
        Formatted string, e.g. format_currency(1200, "GBP") -> "£12.00",
        format_currency(-150, "USD") -> "-$1.50", format_currency(500, "JPY") -> "¥500"
    """
    if cents is None:
        return "n/a"

    code = _normalize_code(currency)
    symbol = SYMBOLS.get(code, f"{code} ")
    amount = int(cents)
    sign = "-" if amount < 0 else ""

    if code in ZERO_DECIMAL:
        value = str(abs(amount))
    else:
        units, minor = divmod(abs(amount), 100)
        value = f"{units}.{minor:02d}"

    return f"{sign}{symbol}{value}"
