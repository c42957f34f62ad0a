from __future__ import annotations

from typing import List

from application.orchestrator import TransferResult, TransferState
from domain.currency import BASE_CURRENCY, QUOTE_CURRENCY, format_amount
from domain.errors import FailureReason
from domain.models import Account, User


def describe_users(users: List[User]) -> str:
    return "\n".join(f"- {u.name} (ID: {u.id})" for u in users)


def describe_balances(user: User, accounts: List[Account]) -> str:
    lines = [f"{a.currency}: {format_amount(a.balance)}" for a in accounts]
    return f"{user.name}'s Account Balances:\n" + "\n".join(lines)


def describe_rate(rate: float) -> str:
    return f"Current exchange rate: 1 {BASE_CURRENCY} = {rate} {QUOTE_CURRENCY}"


def describe_transfer(result: TransferResult) -> str:
    """Human-readable summary of a transfer in any of its states."""

    if result.state is TransferState.PENDING:
        return result.message

    if result.state is TransferState.ABORTED:
        if result.reason is FailureReason.RESOLUTION_CANCELLED:
            return result.message
        if result.reason is FailureReason.RATE_CONDITION_NOT_MET:
            return f"Transfer not executed: {result.message}"
        return f"Transfer failed: {result.message}"

    balances = "\n".join(
        f"- {a.currency}: {format_amount(a.balance)}" for a in result.balances
    )
    return (
        "Transfer completed successfully!\n\n"
        "Transaction Details:\n"
        f"- User: {result.user.name}\n"
        f"- {result.message}\n"
        f"- Exchange Rate: {result.rate}\n\n"
        f"New Balances:\n{balances}"
    )
