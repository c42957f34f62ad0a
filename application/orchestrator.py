from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from application.continuation import (
    AWAITING_CURRENCY,
    AWAITING_USER,
    PendingTransfer,
    encode_pending_transfer,
    parse_pending_transfer,
)
from application.preconditions import check_source_funds, evaluate
from application.resolver import (
    CURRENCY_FIELD,
    USER_FIELD,
    ChoiceRequest,
    currency_choices,
    resolve_answer,
    user_choices,
)
from application.services import ExternalContext, identify_user, validate_positive_amount
from domain.currency import convert, format_amount
from domain.errors import (
    AccountNotFoundError,
    FailureReason,
    IdentityMismatchError,
    InsufficientFundsError,
    UpstreamCallFailure,
)
from domain.models import Account, RateCondition, User
from domain.repositories import IdentityRepository, LedgerStore, RateSource

logger = logging.getLogger(__name__)

DEFAULT_ELICITATION_TIMEOUT = 300.0

# Synchronous answer to a choice request: (accepted, chosen value).
Elicitor = Callable[[ChoiceRequest], Tuple[bool, Optional[str]]]


class TransferState(str, Enum):
    COMMITTED = "committed"
    ABORTED = "aborted"
    PENDING = "pending"


@dataclass
class TransferRequest:
    """
    A transfer as submitted by the caller.

    Identity comes from exactly one of `caller` (a bound external identity),
    `user_id` or `user_name`; with none of them the user is asked for.
    `to_currency` may be left out and will be asked for as well.
    """

    amount: float
    from_currency: str
    to_currency: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    caller: Optional[ExternalContext] = None
    rate_condition: Optional[RateCondition] = None


@dataclass
class PendingChoice:
    """A choice the caller must answer before the transfer can continue."""

    choice: ChoiceRequest
    token: str


@dataclass
class TransferResult:
    state: TransferState
    message: str
    reason: Optional[FailureReason] = None
    user: Optional[User] = None
    balances: List[Account] = field(default_factory=list)
    converted_amount: Optional[float] = None
    rate: Optional[float] = None
    from_currency: Optional[str] = None
    to_currency: Optional[str] = None
    pending: Optional[PendingChoice] = None

    @property
    def success(self) -> bool:
        return self.state is TransferState.COMMITTED


def _aborted(reason: FailureReason, message: str, user: Optional[User] = None) -> TransferResult:
    logger.info("Transfer aborted (%s): %s", reason.value, message)
    return TransferResult(state=TransferState.ABORTED, message=message, reason=reason, user=user)


class TransferOrchestrator:
    """
    Drives a transfer from request to commit.

    Steps: identify the user, resolve a missing target currency, evaluate
    preconditions against fresh state, commit through the ledger, report.
    Missing fields are resolved with a two-phase continuation: the
    orchestrator returns a pending result carrying a choice and a token,
    and `resume_transfer` feeds the answer back in. The token carries the
    whole state; the orchestrator only remembers which tokens are still
    live, and each one is accepted once.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        rate_source: RateSource,
        identity_repo: Optional[IdentityRepository] = None,
        elicitation_timeout: float = DEFAULT_ELICITATION_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ledger = ledger
        self._rate_source = rate_source
        self._identity_repo = identity_repo
        self._elicitation_timeout = elicitation_timeout
        self._clock = clock
        # Live tokens mapped to the time they were issued.
        self._issued: Dict[str, float] = {}
        self._issued_lock = threading.Lock()

    @property
    def elicitation_timeout(self) -> float:
        return self._elicitation_timeout

    def pending_field(self, token: str) -> Optional[str]:
        """Name of the field a token is waiting for, or None for a malformed token."""

        try:
            pending = parse_pending_transfer(token)
        except ValueError:
            return None
        return USER_FIELD if pending.awaiting == AWAITING_USER else CURRENCY_FIELD

    def start_transfer(self, request: TransferRequest) -> TransferResult:
        error = validate_positive_amount(request.amount)
        if error:
            return _aborted(FailureReason.INVALID_AMOUNT, error)

        try:
            user_id = None
            if request.caller is not None or request.user_id or request.user_name:
                identity = identify_user(
                    self._ledger,
                    user_id=request.user_id,
                    user_name=request.user_name,
                    caller=request.caller,
                    identity_repo=self._identity_repo,
                )
                if not identity.success:
                    return _aborted(identity.reason, identity.message)
                user_id = identity.user.id

            state = PendingTransfer(
                amount=request.amount,
                from_currency=request.from_currency,
                user_id=user_id,
                to_currency=request.to_currency,
                rate_condition=request.rate_condition,
            )
            return self._advance(state)
        except UpstreamCallFailure as exc:
            return _aborted(FailureReason.UPSTREAM_CALL_FAILURE, str(exc))

    def resume_transfer(
        self,
        token: str,
        accepted: bool,
        value: Optional[str] = None,
    ) -> TransferResult:
        """
        Continue a pending transfer with the caller's answer.

        A decline, a missing value, or a value outside the offered set
        cancels the transfer, as does a token older than the elicitation
        timeout. There is one round per missing field: the token is spent
        by the first answer, whatever it is, and any later answer to it
        cancels.
        """

        try:
            pending = parse_pending_transfer(token)
        except ValueError:
            return _aborted(
                FailureReason.RESOLUTION_CANCELLED,
                "Transfer cancelled - invalid selection",
            )

        what = "user" if pending.awaiting == AWAITING_USER else "target currency"
        live = self._consume(token)

        if self._clock() - pending.issued_at > self._elicitation_timeout:
            return _aborted(
                FailureReason.RESOLUTION_CANCELLED,
                f"Transfer cancelled - {what} selection expired",
            )

        if not live:
            return _aborted(
                FailureReason.RESOLUTION_CANCELLED,
                f"Transfer cancelled - {what} selection is no longer valid",
            )

        try:
            choice = self._rebuild_choice(pending)
            if choice is None:
                return _aborted(FailureReason.IDENTITY_NOT_FOUND, f"User {pending.user_id} not found")

            answer = resolve_answer(choice, accepted, value)
            if answer is None:
                return _aborted(
                    FailureReason.RESOLUTION_CANCELLED,
                    f"Transfer cancelled - no {what} selected",
                )

            logger.debug("Resolved %s=%s for pending transfer", choice.field, answer)
            return self._advance(pending.with_answer(answer))
        except UpstreamCallFailure as exc:
            return _aborted(FailureReason.UPSTREAM_CALL_FAILURE, str(exc))

    def run_transfer(self, request: TransferRequest, elicit: Elicitor) -> TransferResult:
        """
        Blocking variant: answer every pending choice through `elicit`
        until the transfer is committed or aborted.
        """

        result = self.start_transfer(request)
        while result.state is TransferState.PENDING:
            accepted, value = elicit(result.pending.choice)
            result = self.resume_transfer(result.pending.token, accepted, value)
        return result

    def _rebuild_choice(self, pending: PendingTransfer) -> Optional[ChoiceRequest]:
        if pending.awaiting == AWAITING_USER:
            return user_choices(self._ledger.get_all_users())

        user = self._ledger.find_user(pending.user_id)
        if user is None:
            return None
        return currency_choices(user, pending.from_currency, pending.amount)

    def _advance(self, state: PendingTransfer) -> TransferResult:
        if state.user_id is None:
            users = self._ledger.get_all_users()
            if not users:
                return _aborted(FailureReason.IDENTITY_NOT_FOUND, "No users available for transfer")
            return self._elicit(state, AWAITING_USER, user_choices(users))

        user = self._ledger.find_user(state.user_id)
        if user is None:
            return _aborted(FailureReason.IDENTITY_NOT_FOUND, f"User {state.user_id} not found")

        if state.to_currency is None:
            funds = check_source_funds(user, state.from_currency, state.amount)
            if not funds.ok:
                return _aborted(funds.reason, funds.message, user=user)

            choice = currency_choices(user, state.from_currency, state.amount)
            if not choice.options:
                return _aborted(
                    FailureReason.NO_ALTERNATIVE_ACCOUNT,
                    "No other currency accounts available for transfer",
                    user=user,
                )
            return self._elicit(state, AWAITING_CURRENCY, choice)

        return self._commit(user, state)

    def _elicit(self, state: PendingTransfer, awaiting: str, choice: ChoiceRequest) -> TransferResult:
        now = self._clock()
        pending = replace(
            state,
            awaiting=awaiting,
            issued_at=int(now),
            nonce=secrets.token_hex(4),
        )
        token = encode_pending_transfer(pending)

        with self._issued_lock:
            self._prune(now)
            self._issued[token] = now

        logger.debug("Transfer awaiting %s (%d options)", choice.field, len(choice.options))
        return TransferResult(
            state=TransferState.PENDING,
            message=choice.message,
            pending=PendingChoice(choice=choice, token=token),
        )

    def _consume(self, token: str) -> bool:
        """Spend a token; False when it was never issued or already answered."""

        with self._issued_lock:
            return self._issued.pop(token, None) is not None

    def _prune(self, now: float) -> None:
        # Caller holds _issued_lock.
        expired = [t for t, issued in self._issued.items() if now - issued > self._elicitation_timeout]
        for token in expired:
            del self._issued[token]

    def _commit(self, user: User, state: PendingTransfer) -> TransferResult:
        from_currency = state.from_currency
        to_currency = state.to_currency

        outcome = evaluate(
            user,
            from_currency,
            to_currency,
            state.amount,
            self._rate_source,
            state.rate_condition,
        )
        if not outcome.ok:
            return _aborted(outcome.reason, outcome.message, user=user)

        rate = self._rate_source.get_rate()
        if rate <= 0:
            return _aborted(
                FailureReason.INVALID_RATE,
                f"Exchange rate {rate} cannot be used for conversion",
                user=user,
            )

        try:
            balances = self._ledger.apply_transfer(user, from_currency, to_currency, state.amount, rate)
        except InsufficientFundsError as exc:
            return _aborted(FailureReason.INSUFFICIENT_FUNDS, str(exc), user=user)
        except AccountNotFoundError as exc:
            return _aborted(FailureReason.ACCOUNT_NOT_FOUND, str(exc), user=user)
        except IdentityMismatchError as exc:
            return _aborted(FailureReason.IDENTITY_NOT_FOUND, str(exc), user=user)

        converted = convert(state.amount, from_currency, to_currency, rate)
        message = (
            f"Transferred {format_amount(state.amount)} {from_currency} "
            f"to {format_amount(converted)} {to_currency}"
        )
        logger.info("Transfer committed for user %s: %s at rate %s", user.id, message, rate)

        return TransferResult(
            state=TransferState.COMMITTED,
            message=message,
            user=user,
            balances=balances,
            converted_amount=converted,
            rate=rate,
            from_currency=from_currency,
            to_currency=to_currency,
        )
