from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from domain.errors import (
    AccountNotFoundError,
    IdentityMismatchError,
    InsufficientFundsError,
    UpstreamCallFailure,
)
from domain.models import Account, User
from domain.repositories import LedgerStore, RateSource

logger = logging.getLogger(__name__)


class LedgerApiClient:
    """
    Thin JSON client for the remote ledger API.

    Every transport error, non-2xx status or undecodable JSON body becomes
    `UpstreamCallFailure` carrying the status; nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    def request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = f"{self._base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamCallFailure(None, str(exc)) from exc

        if not response.ok:
            raise UpstreamCallFailure(response.status_code, response.reason or "")

        if "application/json" not in response.headers.get("Content-Type", ""):
            return response.text
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamCallFailure(response.status_code, f"Invalid JSON from {path}") from exc


def _expect_dict(body: Any, what: str) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise UpstreamCallFailure(None, f"Unexpected {what} response")
    return body


def _to_accounts(rows: Any) -> List[Account]:
    try:
        return [Account(currency=r["currency"], balance=float(r["balance"])) for r in rows]
    except (KeyError, TypeError, ValueError) as exc:
        raise UpstreamCallFailure(None, f"Malformed account in ledger response: {exc!r}") from exc


def _to_domain(row: Any) -> User:
    row = _expect_dict(row, "user")
    try:
        user_id, name = str(row["id"]), str(row["name"])
    except KeyError as exc:
        raise UpstreamCallFailure(None, f"User record is missing {exc}") from exc

    accounts = _to_accounts(row.get("accounts") or [])
    accounts.sort(key=lambda a: a.currency)
    return User(id=user_id, name=name, accounts=accounts)


class HttpLedgerStore(LedgerStore):
    """
    `LedgerStore` backed by the remote ledger API.

    Endpoints: `GET /users`, `GET /users/{id}`, `GET /me` and
    `POST /transfer`. The remote applies the transfer with its own rate;
    `rate` is only used locally for reporting. With a token configured the
    remote debits whoever owns the token, so a transfer for anyone else is
    refused before it is posted.
    """

    def __init__(self, client: LedgerApiClient) -> None:
        self._client = client

    def get_all_users(self) -> List[User]:
        rows = self._client.request("GET", "/users") or []
        if not isinstance(rows, list):
            raise UpstreamCallFailure(None, "Unexpected users response")
        return [_to_domain(row) for row in rows]

    def find_user(self, user_id: str) -> Optional[User]:
        try:
            row = self._client.request("GET", f"/users/{quote(user_id, safe='')}")
        except UpstreamCallFailure as exc:
            if exc.status_code == 404:
                return None
            raise
        if not isinstance(row, dict) or "id" not in row:
            return None
        return _to_domain(row)

    def current_user(self) -> User:
        """The user the configured token belongs to."""

        body = _expect_dict(self._client.request("GET", "/me"), "/me")
        if "error" in body:
            raise UpstreamCallFailure(None, str(body["error"]))
        return _to_domain(body)

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
        if self._client.authenticated:
            owner = self.current_user()
            if owner.id != user.id:
                logger.warning("Refusing transfer for user %s with credentials of %s", user.id, owner.id)
                raise IdentityMismatchError(user.id, owner.id)

        result = _expect_dict(
            self._client.request(
                "POST",
                "/transfer",
                {"userId": user.id, "from": from_currency, "to": to_currency, "amount": amount},
            ),
            "transfer",
        )

        if not result.get("success"):
            message = str(result.get("message", ""))
            lowered = message.lower()
            if "insufficient" in lowered:
                raise InsufficientFundsError(from_currency, None, amount)
            if "account not found" in lowered:
                raise AccountNotFoundError(user.id, from_currency)
            raise UpstreamCallFailure(None, message)

        return _to_accounts(result.get("balances") or [])


class HttpRateSource(RateSource):
    def __init__(self, client: LedgerApiClient) -> None:
        self._client = client

    def get_rate(self) -> float:
        body = _expect_dict(self._client.request("GET", "/fx"), "/fx")
        try:
            return float(body["fxRate"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamCallFailure(None, f"Malformed /fx response: {body}") from exc

    def set_rate(self, rate: float) -> None:
        self._client.request("PUT", "/fx", {"rate": rate})
