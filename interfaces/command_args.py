from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from domain.currency import SUPPORTED_CURRENCIES
from domain.models import ABOVE, BELOW, RateCondition


@dataclass
class TransferArgs:
    amount: float
    from_currency: str
    to_currency: Optional[str] = None
    condition: Optional[RateCondition] = None


def parse_amount(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("Amount must be a number.") from None


def parse_currency(raw: str) -> str:
    currency = raw.upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValueError(f"Currency must be one of {', '.join(SUPPORTED_CURRENCIES)}.")
    return currency


def parse_transfer_args(args: List[str]) -> TransferArgs:
    """
    Parse `<amount> <from> [to] [below|above <rate>]`.

    Raises `ValueError` with a message fit for the chat user.
    """

    if len(args) < 2:
        raise ValueError("Usage: <amount> <from> [to] [below|above <rate>]")

    parsed = TransferArgs(amount=parse_amount(args[0]), from_currency=parse_currency(args[1]))
    rest = args[2:]

    if rest and rest[0].lower() not in (BELOW, ABOVE):
        parsed.to_currency = parse_currency(rest[0])
        rest = rest[1:]

    if rest:
        if len(rest) != 2 or rest[0].lower() not in (BELOW, ABOVE):
            raise ValueError("Rate condition must look like: below 0.65")
        try:
            threshold = float(rest[1])
        except ValueError:
            raise ValueError("Rate threshold must be a number.") from None
        parsed.condition = RateCondition(operator=rest[0].lower(), threshold=threshold)

    return parsed
