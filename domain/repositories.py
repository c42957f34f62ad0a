from __future__ import annotations

from typing import List, Optional, Protocol

from .models import Account, User


class LedgerStore(Protocol):
    """
    Abstraction over the ledger holding users and their accounts.

    Implementations are responsible for:
    - Returning snapshots, so that callers never observe a transfer with
      only one of its legs applied.
    - Applying transfers atomically, re-checking the source balance at
      the moment of the debit.
    """

    def get_all_users(self) -> List[User]:
        """Return the full roster of users with their accounts."""

        ...

    def find_user(self, user_id: str) -> Optional[User]:
        """Return the user with the given ID, or None if not found."""

        ...

    def get_account(self, user: User, currency: str) -> Optional[Account]:
        """Return the user's account in `currency`, or None."""

        ...

    def apply_transfer(
        self,
        user: User,
        from_currency: str,
        to_currency: str,
        amount: float,
        rate: float,
    ) -> List[Account]:
        """
        Debit `amount` from the source account and credit the converted
        amount to the destination account as a single step.

        Raises `InsufficientFundsError` when the balance no longer covers
        `amount` and `AccountNotFoundError` when either leg is missing.
        Returns the user's accounts after the transfer.
        """

        ...


class RateSource(Protocol):
    """Holder of the single AUD/USD exchange rate."""

    def get_rate(self) -> float:
        ...

    def set_rate(self, rate: float) -> None:
        """Replace the current rate. No bounds are enforced here."""

        ...


class IdentityRepository(Protocol):
    """
    Maps external identities (Telegram/Discord) to ledger user IDs.

    A caller bound through this repository is the authenticated identity
    for its transfers and is never asked to pick a user.
    """

    def find_user_by_external(
        self,
        provider: str,
        provider_user_id: str,
    ) -> Optional[User]:
        """Return the user mapped to the given external identity, if any."""

        ...

    def set_external_identity(
        self,
        provider: str,
        provider_user_id: str,
        user_id: str,
    ) -> None:
        """Associate an external identity with a ledger user ID."""

        ...

    def clear_external_identity(
        self,
        provider: str,
        provider_user_id: str,
    ) -> None:
        """Remove any mapping for the given external identity."""

        ...
