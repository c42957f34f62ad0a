from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Account:
    """A single-currency balance owned by exactly one user."""

    currency: str
    balance: float


@dataclass
class User:
    """
    Domain representation of a ledger customer.

    A user holds at most one account per currency. This model is
    independent of any particular transport (agent tools, Telegram,
    Discord) or storage backend.
    """

    id: str
    name: str
    accounts: List[Account] = field(default_factory=list)

    def get_account(self, currency: str) -> Optional[Account]:
        for account in self.accounts:
            if account.currency == currency:
                return account
        return None

    def currencies(self) -> List[str]:
        return [account.currency for account in self.accounts]


BELOW = "below"
ABOVE = "above"


@dataclass(frozen=True)
class RateCondition:
    """
    Optional gate on the live exchange rate.

    `below` passes only when the current rate is strictly below the
    threshold, `above` only when it is strictly above it.
    """

    operator: str
    threshold: float

    def __post_init__(self) -> None:
        if self.operator not in (BELOW, ABOVE):
            raise ValueError(f"Unknown rate condition operator: {self.operator}")

    def is_met(self, rate: float) -> bool:
        if self.operator == BELOW:
            return rate < self.threshold
        return rate > self.threshold

    def describe(self) -> str:
        return f"rate must be {self.operator} {self.threshold}"
