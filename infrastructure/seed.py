from __future__ import annotations

from typing import List

from domain.currency import AUD, USD
from domain.models import Account, User

DEFAULT_FX_RATE = 0.68


def seed_users() -> List[User]:
    """Fresh copies of the fixed roster every ledger starts from."""

    return [
        User(
            id="1",
            name="Alice",
            accounts=[Account(AUD, 1000.0), Account(USD, 500.0)],
        ),
        User(
            id="2",
            name="Bob",
            accounts=[Account(AUD, 2000.0), Account(USD, 1000.0)],
        ),
    ]
