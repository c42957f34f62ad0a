from __future__ import annotations

import sqlite3
from typing import List, Optional

from domain.currency import convert
from domain.errors import AccountNotFoundError, InsufficientFundsError
from domain.models import Account, User
from domain.repositories import LedgerStore, RateSource
from infrastructure.seed import DEFAULT_FX_RATE, seed_users

_USER_QUERY = """
    SELECT u.id, u.name, a.currency, a.balance
    FROM users u
    LEFT JOIN accounts a ON a.user_id = u.id
"""


class SqliteLedgerStore(LedgerStore):
    """
    SQLite-backed implementation of `LedgerStore`.

    Owns the `users` and `accounts` tables and maps rows to the domain
    models. It is self-initialising: tables are created if needed and
    seeded with the default roster when empty.
    """

    def __init__(self, db_path: str, seed: bool = True) -> None:
        self._db_path = db_path
        self._ensure_tables()
        if seed:
            self._seed()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_tables(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    user_id TEXT NOT NULL REFERENCES users (id),
                    currency TEXT NOT NULL,
                    balance REAL NOT NULL DEFAULT 0,
                    PRIMARY KEY (user_id, currency)
                )
                """
            )
            conn.commit()

    def _seed(self) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM users")
            if cur.fetchone()[0]:
                return
        for user in seed_users():
            self.add_user(user)

    @staticmethod
    def _to_domain(rows: list) -> List[User]:
        users: dict = {}
        for user_id, name, currency, balance in rows:
            user = users.setdefault(str(user_id), User(id=str(user_id), name=name))
            if currency is not None:
                user.accounts.append(Account(currency=currency, balance=float(balance)))
        return list(users.values())

    def add_user(self, user: User) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "INSERT OR IGNORE INTO users (id, name) VALUES (?, ?)",
                (user.id, user.name),
            )
            cur.executemany(
                """
                INSERT OR IGNORE INTO accounts (user_id, currency, balance)
                VALUES (?, ?, ?)
                """,
                [(user.id, a.currency, a.balance) for a in user.accounts],
            )
            conn.commit()

    def get_all_users(self) -> List[User]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(_USER_QUERY + " ORDER BY u.id, a.currency")
            return self._to_domain(cur.fetchall())

    def find_user(self, user_id: str) -> Optional[User]:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(_USER_QUERY + " WHERE u.id = ? ORDER BY a.currency", (user_id,))
            users = self._to_domain(cur.fetchall())
            if not users:
                return None
            return users[0]

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
        credited = convert(amount, from_currency, to_currency, rate)

        # Both legs share one transaction; the debit only matches while the
        # balance still covers it.
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE accounts
                SET balance = balance - ?
                WHERE user_id = ? AND currency = ? AND balance >= ?
                """,
                (amount, user.id, from_currency, amount),
            )
            if cur.rowcount == 0:
                cur.execute(
                    "SELECT balance FROM accounts WHERE user_id = ? AND currency = ?",
                    (user.id, from_currency),
                )
                row = cur.fetchone()
                if row is None:
                    raise AccountNotFoundError(user.id, from_currency)
                raise InsufficientFundsError(from_currency, float(row[0]), amount)

            cur.execute(
                """
                UPDATE accounts
                SET balance = balance + ?
                WHERE user_id = ? AND currency = ?
                """,
                (credited, user.id, to_currency),
            )
            if cur.rowcount == 0:
                raise AccountNotFoundError(user.id, to_currency)

            cur.execute(
                """
                SELECT currency, balance FROM accounts
                WHERE user_id = ?
                ORDER BY currency
                """,
                (user.id,),
            )
            balances = [Account(currency=row[0], balance=float(row[1])) for row in cur.fetchall()]
            conn.commit()
            return balances


class SqliteRateSource(RateSource):
    """Stores the exchange rate as the single row of the `fx_rate` table."""

    def __init__(self, db_path: str, initial_rate: float = DEFAULT_FX_RATE) -> None:
        self._db_path = db_path
        self._ensure_table(initial_rate)

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_table(self, initial_rate: float) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS fx_rate (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    rate REAL NOT NULL
                )
                """
            )
            cur.execute(
                "INSERT OR IGNORE INTO fx_rate (id, rate) VALUES (1, ?)",
                (initial_rate,),
            )
            conn.commit()

    def get_rate(self) -> float:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT rate FROM fx_rate WHERE id = 1")
            return float(cur.fetchone()[0])

    def set_rate(self, rate: float) -> None:
        with self._get_connection() as conn:
            cur = conn.cursor()
            cur.execute("UPDATE fx_rate SET rate = ? WHERE id = 1", (rate,))
            conn.commit()
