from __future__ import annotations

from enum import Enum
from typing import Optional

from .currency import format_amount


class FailureReason(str, Enum):
    """Why a ledger operation did not go through."""

    IDENTITY_NOT_FOUND = "identity_not_found"
    SAME_CURRENCY = "same_currency"
    ACCOUNT_NOT_FOUND = "account_not_found"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    RATE_CONDITION_NOT_MET = "rate_condition_not_met"
    NO_ALTERNATIVE_ACCOUNT = "no_alternative_account"
    RESOLUTION_CANCELLED = "resolution_cancelled"
    UPSTREAM_CALL_FAILURE = "upstream_call_failure"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_RATE = "invalid_rate"


class LedgerError(Exception):
    """Base class for errors raised by ledger stores and rate sources."""


class AccountNotFoundError(LedgerError):
    def __init__(self, user_id: str, currency: str) -> None:
        super().__init__(f"User {user_id} does not have a {currency} account.")
        self.user_id = user_id
        self.currency = currency


class InsufficientFundsError(LedgerError):
    """Raised by `apply_transfer` when the balance no longer covers the debit."""

    def __init__(self, currency: str, balance: Optional[float], amount: float) -> None:
        if balance is None:
            message = f"Insufficient funds for {format_amount(amount)} {currency}."
        else:
            message = (
                f"Insufficient funds. Current balance: {format_amount(balance)} {currency}, "
                f"Requested: {format_amount(amount)} {currency}"
            )
        super().__init__(message)
        self.currency = currency
        self.balance = balance
        self.amount = amount


class UpstreamCallFailure(LedgerError):
    """The remote ledger was unreachable or answered with a non-success status."""

    def __init__(self, status_code: Optional[int], message: str) -> None:
        if status_code is None:
            text = f"Ledger API call failed: {message}"
        else:
            text = f"Ledger API call failed: {status_code} {message}"
        super().__init__(text)
        self.status_code = status_code
        self.message = message


class IdentityMismatchError(LedgerError):
    """The ledger would debit a different user than the one the transfer was checked for."""

    def __init__(self, expected_user_id: str, actual_user_id: str) -> None:
        super().__init__(
            f"Ledger credentials belong to user {actual_user_id}, not user {expected_user_id}."
        )
        self.expected_user_id = expected_user_id
        self.actual_user_id = actual_user_id
