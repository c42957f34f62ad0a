from __future__ import annotations

import copy
import threading
from typing import Dict, Iterable, List, Optional

from domain.currency import convert
from domain.errors import AccountNotFoundError, InsufficientFundsError
from domain.models import Account, User
from domain.repositories import LedgerStore, RateSource
from infrastructure.seed import DEFAULT_FX_RATE, seed_users


class InMemoryLedgerStore(LedgerStore):
    """
    Process-local implementation of `LedgerStore`.

    Each user has its own lock; reads copy the user under that lock and
    transfers check and mutate under it, so two transfers on the same user
    are serialised and no reader sees a half-applied transfer. Nothing
    survives a restart.
    """

    def __init__(self, users: Optional[Iterable[User]] = None) -> None:
        self._users: Dict[str, User] = {}
        self._locks: Dict[str, threading.Lock] = {}
        for user in seed_users() if users is None else users:
            self.add_user(user)

    def add_user(self, user: User) -> None:
        currencies = user.currencies()
        if len(set(currencies)) != len(currencies):
            raise ValueError(f"User {user.id} holds more than one account per currency.")

        stored = copy.deepcopy(user)
        stored.accounts.sort(key=lambda a: a.currency)
        self._locks.setdefault(user.id, threading.Lock())
        self._users[user.id] = stored

    def _snapshot(self, user_id: str) -> Optional[User]:
        lock = self._locks.get(user_id)
        if lock is None:
            return None
        with lock:
            return copy.deepcopy(self._users[user_id])

    def get_all_users(self) -> List[User]:
        return [self._snapshot(user_id) for user_id in list(self._users)]

    def find_user(self, user_id: str) -> Optional[User]:
        return self._snapshot(user_id)

    def get_account(self, user: User, currency: str) -> Optional[Account]:
        return user.get_account(currency)

    def apply_transfer(
        self,
        user: User,
        from_currency: str,
        to_currency: str,
        amount: float,
        rate: float,
    ) -> List[Account]:
        lock = self._locks.get(user.id)
        if lock is None:
            raise AccountNotFoundError(user.id, from_currency)

        with lock:
            stored = self._users[user.id]
            source = stored.get_account(from_currency)
            target = stored.get_account(to_currency)
            if source is None:
                raise AccountNotFoundError(user.id, from_currency)
            if target is None:
                raise AccountNotFoundError(user.id, to_currency)

            if source.balance < amount:
                raise InsufficientFundsError(from_currency, source.balance, amount)

            credited = convert(amount, from_currency, to_currency, rate)
            source.balance -= amount
            target.balance += credited
            return copy.deepcopy(stored.accounts)


class InMemoryRateSource(RateSource):
    def __init__(self, rate: float = DEFAULT_FX_RATE) -> None:
        self._rate = rate
        self._lock = threading.Lock()

    def get_rate(self) -> float:
        with self._lock:
            return self._rate

    def set_rate(self, rate: float) -> None:
        with self._lock:
            self._rate = rate
