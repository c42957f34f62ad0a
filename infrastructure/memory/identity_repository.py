from __future__ import annotations

from typing import Dict, Optional, Tuple

from domain.models import User
from domain.repositories import IdentityRepository, LedgerStore


class InMemoryIdentityRepository(IdentityRepository):
    def __init__(self, ledger: LedgerStore) -> None:
        self._ledger = ledger
        self._mapping: Dict[Tuple[str, str], str] = {}

    def find_user_by_external(
        self,
        provider: str,
        provider_user_id: str,
    ) -> Optional[User]:
        user_id = self._mapping.get((provider, provider_user_id))
        if user_id is None:
            return None
        return self._ledger.find_user(user_id)

    def set_external_identity(
        self,
        provider: str,
        provider_user_id: str,
        user_id: str,
    ) -> None:
        self._mapping[(provider, provider_user_id)] = user_id

    def clear_external_identity(
        self,
        provider: str,
        provider_user_id: str,
    ) -> None:
        self._mapping.pop((provider, provider_user_id), None)
