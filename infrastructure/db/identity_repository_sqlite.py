from __future__ import annotations

import sqlite3
import time
from typing import Optional

from domain.models import User
from domain.repositories import IdentityRepository, LedgerStore

_LINK_QUERY = """
    SELECT ledger_user_id
    FROM chat_links
    WHERE provider = ? AND chat_user_id = ?
"""


class SqliteIdentityRepository(IdentityRepository):
    """
    Chat account links (`/link`, `!link`) kept in a local SQLite file.

    Only the binding is stored here; the bound user is always read back
    from `ledger`, which may be remote, so a link to a user the ledger no
    longer knows resolves to None.
    """

    def __init__(self, db_path: str, ledger: LedgerStore) -> None:
        self._db_path = db_path
        self._ledger = ledger
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _ensure_table(self) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_links (
                    provider TEXT NOT NULL,
                    chat_user_id TEXT NOT NULL,
                    ledger_user_id TEXT NOT NULL,
                    linked_at INTEGER NOT NULL,
                    PRIMARY KEY (provider, chat_user_id)
                )
                """
            )

    def find_user_by_external(self, provider: str, provider_user_id: str) -> Optional[User]:
        with self._get_connection() as conn:
            row = conn.execute(_LINK_QUERY, (provider, provider_user_id)).fetchone()
        if row is None:
            return None
        return self._ledger.find_user(str(row[0]))

    def set_external_identity(self, provider: str, provider_user_id: str, user_id: str) -> None:
        """Bind a chat account to a ledger user, replacing any earlier link."""

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO chat_links (provider, chat_user_id, ledger_user_id, linked_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (provider, chat_user_id)
                DO UPDATE SET ledger_user_id = excluded.ledger_user_id,
                              linked_at = excluded.linked_at
                """,
                (provider, provider_user_id, user_id, int(time.time())),
            )

    def clear_external_identity(self, provider: str, provider_user_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM chat_links WHERE provider = ? AND chat_user_id = ?",
                (provider, provider_user_id),
            )
