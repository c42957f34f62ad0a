from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from domain.models import RateCondition

AWAITING_USER = "u"
AWAITING_CURRENCY = "c"

_EMPTY = "-"


@dataclass(frozen=True)
class PendingTransfer:
    """
    Everything needed to resume a transfer after an elicitation round.

    The state is explicit and serializes to a short token, so a resumption
    can arrive through any channel (agent reply, button callback) without
    the process keeping closures around. `nonce` tells apart two tokens
    issued for the same state in the same second.
    """

    amount: float
    from_currency: str
    user_id: Optional[str] = None
    to_currency: Optional[str] = None
    rate_condition: Optional[RateCondition] = None
    awaiting: Optional[str] = None
    issued_at: int = 0
    nonce: Optional[str] = None

    def with_answer(self, value: str) -> "PendingTransfer":
        if self.awaiting == AWAITING_USER:
            return replace(self, user_id=value)
        return replace(self, to_currency=value)


def _opt(value: Optional[object]) -> str:
    return _EMPTY if value is None else str(value)


def encode_pending_transfer(pending: PendingTransfer) -> str:
    """
    Encode a pending transfer.

    Format: {awaiting}:{user_id}:{amount}:{from}:{to}:{operator}:{threshold}:{issued_at}:{nonce}
    """

    if pending.awaiting not in (AWAITING_USER, AWAITING_CURRENCY):
        raise ValueError("Only a transfer awaiting an answer can be encoded.")

    condition = pending.rate_condition
    return ":".join(
        [
            pending.awaiting,
            _opt(pending.user_id),
            repr(pending.amount),
            pending.from_currency,
            _opt(pending.to_currency),
            _opt(condition.operator if condition else None),
            _opt(repr(condition.threshold) if condition else None),
            str(pending.issued_at),
            _opt(pending.nonce),
        ]
    )


def parse_pending_transfer(token: str) -> PendingTransfer:
    parts = token.split(":")
    if len(parts) != 9 or parts[0] not in (AWAITING_USER, AWAITING_CURRENCY):
        raise ValueError(f"Invalid pending transfer token: {token}")

    awaiting, user_id, amount, from_currency, to_currency, operator, threshold, issued_at, nonce = parts

    condition = None
    if operator != _EMPTY:
        condition = RateCondition(operator=operator, threshold=float(threshold))

    return PendingTransfer(
        amount=float(amount),
        from_currency=from_currency,
        awaiting=awaiting,
        issued_at=int(issued_at),
        user_id=None if user_id == _EMPTY else user_id,
        to_currency=None if to_currency == _EMPTY else to_currency,
        rate_condition=condition,
        nonce=None if nonce == _EMPTY else nonce,
    )
