from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.currency import format_amount
from domain.errors import FailureReason
from domain.models import RateCondition, User
from domain.repositories import RateSource


@dataclass(frozen=True)
class Eligibility:
    """Outcome of a precondition check. Evaluated fresh on every call."""

    ok: bool
    message: str
    reason: Optional[FailureReason] = None
    balance: Optional[float] = None
    rate: Optional[float] = None


def _reject(reason: FailureReason, message: str, **kwargs) -> Eligibility:
    return Eligibility(ok=False, message=message, reason=reason, **kwargs)


def check_source_funds(user: User, from_currency: str, amount: float) -> Eligibility:
    """
    Preliminary check run before any elicitation: the source account must
    exist and cover `amount`.
    """

    source = user.get_account(from_currency)
    if source is None:
        return _reject(
            FailureReason.ACCOUNT_NOT_FOUND,
            f"User {user.name} does not have a {from_currency} account",
        )

    if source.balance < amount:
        return _reject(
            FailureReason.INSUFFICIENT_FUNDS,
            f"Insufficient balance. Current balance: {format_amount(source.balance)} {from_currency}, "
            f"Requested: {format_amount(amount)} {from_currency}",
            balance=source.balance,
        )

    return Eligibility(
        ok=True,
        message=f"Transfer eligible. Current balance: {format_amount(source.balance)} {from_currency}",
        balance=source.balance,
    )


def evaluate(
    user: User,
    from_currency: str,
    to_currency: Optional[str],
    amount: float,
    rate_source: RateSource,
    condition: Optional[RateCondition] = None,
) -> Eligibility:
    """
    Decide whether a transfer may proceed.

    Checks run in a fixed order and the first failure wins:
    same currency, source account, destination account, balance, and
    finally the optional rate condition. When `to_currency` is None only
    the source-side checks and the rate condition apply.
    """

    if to_currency is not None and from_currency == to_currency:
        return _reject(
            FailureReason.SAME_CURRENCY,
            "Source and target accounts must be different.",
        )

    if user.get_account(from_currency) is None:
        return _reject(
            FailureReason.ACCOUNT_NOT_FOUND,
            f"User {user.name} does not have a {from_currency} account",
        )

    if to_currency is not None and user.get_account(to_currency) is None:
        return _reject(
            FailureReason.ACCOUNT_NOT_FOUND,
            f"User {user.name} does not have a {to_currency} account",
        )

    funds = check_source_funds(user, from_currency, amount)
    if not funds.ok:
        return funds

    rate = None
    if condition is not None:
        rate = rate_source.get_rate()
        if not condition.is_met(rate):
            return _reject(
                FailureReason.RATE_CONDITION_NOT_MET,
                f"FX rate condition not met. Current rate: {rate}, "
                f"Condition: {condition.describe()}",
                balance=funds.balance,
                rate=rate,
            )

    return Eligibility(ok=True, message=funds.message, balance=funds.balance, rate=rate)
