from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from application.preconditions import evaluate
from domain.errors import FailureReason, UpstreamCallFailure
from domain.models import Account, RateCondition, User
from domain.repositories import IdentityRepository, LedgerStore, RateSource

logger = logging.getLogger(__name__)


@dataclass
class ExternalContext:
    """
    Information about the caller from a particular channel (Telegram, Discord).

    The application layer never depends on concrete SDK types; it only sees
    this small context object.
    """

    provider: str
    provider_user_id: str
    display_name: str = ""


@dataclass
class IdentityResult:
    """Outcome of resolving who a request is about."""

    success: bool
    message: str = ""
    reason: Optional[FailureReason] = None
    user: Optional[User] = None
    candidates: List[User] = field(default_factory=list)


@dataclass
class BalanceResult:
    success: bool
    message: str = ""
    reason: Optional[FailureReason] = None
    user: Optional[User] = None
    accounts: List[Account] = field(default_factory=list)
    candidates: List[User] = field(default_factory=list)


@dataclass
class RateResult:
    success: bool
    rate: Optional[float] = None
    message: str = ""
    reason: Optional[FailureReason] = None


@dataclass
class EligibilityResult:
    eligible: bool
    message: str
    reason: Optional[FailureReason] = None
    balance: Optional[float] = None
    rate: Optional[float] = None


def validate_positive_amount(amount: float) -> Optional[str]:
    # Written as a negation so NaN is rejected too.
    if not amount > 0:
        return "Amount must be greater than zero."
    return None


def _upstream_failure(exc: UpstreamCallFailure) -> Dict[str, Any]:
    """Message and reason fields for a result reporting a failed ledger call."""

    logger.warning("Ledger call failed: %s", exc)
    return {"message": str(exc), "reason": FailureReason.UPSTREAM_CALL_FAILURE}


def find_user_by_name(users: List[User], name: str) -> Optional[User]:
    """Case-insensitive exact match on the display name."""

    wanted = name.lower()
    for user in users:
        if user.name.lower() == wanted:
            return user
    return None


def identify_user(
    ledger: LedgerStore,
    user_id: Optional[str] = None,
    user_name: Optional[str] = None,
    caller: Optional[ExternalContext] = None,
    identity_repo: Optional[IdentityRepository] = None,
) -> IdentityResult:
    """
    Resolve the subject of a request.

    Precedence: the caller's bound identity, then an explicit ID, then a
    name. With none of those the result fails and carries the roster as
    `candidates`, so the caller can decide whether to ask.

    `UpstreamCallFailure` propagates to the caller.
    """

    if caller is not None and identity_repo is not None:
        user = identity_repo.find_user_by_external(caller.provider, caller.provider_user_id)
        if user is None:
            return IdentityResult(
                success=False,
                message="Your account is not linked to a ledger user.",
                reason=FailureReason.IDENTITY_NOT_FOUND,
            )
        return IdentityResult(success=True, user=user)

    if user_id:
        user = ledger.find_user(user_id)
        if user is None:
            return IdentityResult(
                success=False,
                message=f"User {user_id} not found",
                reason=FailureReason.IDENTITY_NOT_FOUND,
            )
        return IdentityResult(success=True, user=user)

    users = ledger.get_all_users()
    if user_name:
        user = find_user_by_name(users, user_name)
        if user is None:
            return IdentityResult(
                success=False,
                message=f'User "{user_name}" not found',
                reason=FailureReason.IDENTITY_NOT_FOUND,
                candidates=users,
            )
        return IdentityResult(success=True, user=user)

    return IdentityResult(
        success=False,
        message="Please specify a user.",
        reason=FailureReason.IDENTITY_NOT_FOUND,
        candidates=users,
    )


def list_users(ledger: LedgerStore) -> List[User]:
    return ledger.get_all_users()


def get_balance(
    ledger: LedgerStore,
    user_id: Optional[str] = None,
    user_name: Optional[str] = None,
    caller: Optional[ExternalContext] = None,
    identity_repo: Optional[IdentityRepository] = None,
) -> BalanceResult:
    try:
        identity = identify_user(ledger, user_id, user_name, caller, identity_repo)
    except UpstreamCallFailure as exc:
        return BalanceResult(success=False, **_upstream_failure(exc))

    if not identity.success:
        return BalanceResult(
            success=False,
            message=identity.message,
            reason=identity.reason,
            candidates=identity.candidates,
        )

    user = identity.user
    return BalanceResult(success=True, user=user, accounts=list(user.accounts))


def get_rate(rate_source: RateSource) -> RateResult:
    try:
        return RateResult(success=True, rate=rate_source.get_rate())
    except UpstreamCallFailure as exc:
        return RateResult(success=False, **_upstream_failure(exc))


def update_rate(
    rate: float,
    rate_source: RateSource,
    require_positive: bool = False,
) -> RateResult:
    """
    Administrative rate update.

    By default any value is stored as given. With `require_positive` the
    hardened variant refuses zero and negative rates, which cannot be
    used for conversion.
    """

    if require_positive and rate <= 0:
        return RateResult(
            success=False,
            message="Exchange rate must be greater than zero.",
            reason=FailureReason.INVALID_RATE,
        )

    try:
        rate_source.set_rate(rate)
        current = rate_source.get_rate()
    except UpstreamCallFailure as exc:
        return RateResult(success=False, **_upstream_failure(exc))

    logger.info("Exchange rate updated to %s", current)
    return RateResult(success=True, rate=current)


def check_eligibility(
    ledger: LedgerStore,
    rate_source: RateSource,
    user_id: str,
    from_currency: str,
    amount: float,
    condition: Optional[RateCondition] = None,
    to_currency: Optional[str] = None,
) -> EligibilityResult:
    """
    Dry-run of the transfer preconditions. Nothing is mutated.
    """

    error = validate_positive_amount(amount)
    if error:
        return EligibilityResult(eligible=False, message=error, reason=FailureReason.INVALID_AMOUNT)

    try:
        user = ledger.find_user(user_id)
        if user is None:
            return EligibilityResult(
                eligible=False,
                message="User not found",
                reason=FailureReason.IDENTITY_NOT_FOUND,
            )
        outcome = evaluate(user, from_currency, to_currency, amount, rate_source, condition)
    except UpstreamCallFailure as exc:
        return EligibilityResult(eligible=False, **_upstream_failure(exc))

    return EligibilityResult(
        eligible=outcome.ok,
        message=outcome.message,
        reason=outcome.reason,
        balance=outcome.balance,
        rate=outcome.rate,
    )
