from __future__ import annotations

from typing import Tuple

AUD = "AUD"
USD = "USD"

SUPPORTED_CURRENCIES: Tuple[str, ...] = (AUD, USD)

# The exchange rate always quotes 1 unit of BASE_CURRENCY in QUOTE_CURRENCY.
BASE_CURRENCY = AUD
QUOTE_CURRENCY = USD


def convert(amount: float, from_currency: str, to_currency: str, rate: float) -> float:
    """
    Convert `amount` between the two supported currencies.

    Base to quote multiplies by `rate`, quote to base divides by it.
    A same-currency conversion is never executed and raises `ValueError`.
    """

    if from_currency == to_currency:
        raise ValueError("Source and target currencies must be different.")

    if (from_currency, to_currency) == (BASE_CURRENCY, QUOTE_CURRENCY):
        return amount * rate
    if (from_currency, to_currency) == (QUOTE_CURRENCY, BASE_CURRENCY):
        return amount / rate

    raise ValueError(f"Unsupported currency pair: {from_currency}/{to_currency}")


def format_amount(amount: float) -> str:
    """Render whole amounts without a trailing `.0`."""

    if float(amount).is_integer():
        return str(int(amount))
    return str(amount)
