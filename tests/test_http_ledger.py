import unittest
from unittest import mock

import requests

from domain.errors import IdentityMismatchError, InsufficientFundsError, UpstreamCallFailure
from domain.models import Account, User
from infrastructure.http.ledger_client import HttpLedgerStore, HttpRateSource, LedgerApiClient

ALICE = {
    "id": "1",
    "name": "Alice",
    "accessToken": "not-for-us",
    "accounts": [{"currency": "USD", "balance": 500}, {"currency": "AUD", "balance": 1000}],
}

ALICE_ME = {"id": "1", "name": "Alice", "accounts": ALICE["accounts"]}
BOB_ME = {"id": "2", "name": "Bob", "accounts": []}


def make_alice() -> User:
    return User(id="1", name="Alice", accounts=[Account("AUD", 1000.0), Account("USD", 500.0)])


def json_response(payload, status_code=200, reason="OK"):
    response = mock.Mock()
    response.ok = 200 <= status_code < 300
    response.status_code = status_code
    response.reason = reason
    response.headers = {"Content-Type": "application/json; charset=utf-8"}
    response.json.return_value = payload
    return response


class HttpLedgerStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock()
        self.client = LedgerApiClient("http://ledger.local/", token="alice_token", session=self.session)
        self.ledger = HttpLedgerStore(self.client)

    def test_get_all_users_maps_accounts_sorted(self):
        self.session.request.return_value = json_response([ALICE])
        users = self.ledger.get_all_users()

        self.assertEqual(users[0].name, "Alice")
        self.assertEqual(users[0].currencies(), ["AUD", "USD"])
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "http://ledger.local/users"))
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer alice_token")

    def test_find_user_not_found(self):
        self.session.request.return_value = json_response({}, status_code=404, reason="Not Found")
        self.assertIsNone(self.ledger.find_user("9"))

    def test_server_error_is_upstream_failure(self):
        self.session.request.return_value = json_response({}, status_code=500, reason="Internal Server Error")
        with self.assertRaises(UpstreamCallFailure) as ctx:
            self.ledger.find_user("1")
        self.assertEqual(ctx.exception.status_code, 500)

    def test_transport_error_is_upstream_failure(self):
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(UpstreamCallFailure) as ctx:
            self.ledger.get_all_users()
        self.assertIsNone(ctx.exception.status_code)

    def test_apply_transfer_posts_and_returns_balances(self):
        self.session.request.side_effect = [
            json_response(ALICE_ME),
            json_response(
                {
                    "success": True,
                    "message": "Transferred 100 AUD to 68 USD",
                    "balances": [{"currency": "AUD", "balance": 900}, {"currency": "USD", "balance": 568}],
                }
            ),
        ]
        user = make_alice()

        accounts = self.ledger.apply_transfer(user, "AUD", "USD", 100, 0.68)

        self.assertEqual([(a.currency, a.balance) for a in accounts], [("AUD", 900.0), ("USD", 568.0)])
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "http://ledger.local/transfer"))
        self.assertEqual(kwargs["json"], {"userId": "1", "from": "AUD", "to": "USD", "amount": 100})

    def test_rejected_transfer_for_funds(self):
        self.session.request.side_effect = [
            json_response(ALICE_ME),
            json_response({"success": False, "message": "Insufficient funds."}),
        ]
        with self.assertRaises(InsufficientFundsError):
            self.ledger.apply_transfer(make_alice(), "AUD", "USD", 100, 0.68)

    def test_other_rejection_is_upstream_failure(self):
        self.session.request.side_effect = [
            json_response(ALICE_ME),
            json_response({"success": False, "message": "Source and target accounts must be different."}),
        ]
        with self.assertRaises(UpstreamCallFailure):
            self.ledger.apply_transfer(make_alice(), "AUD", "USD", 100, 0.68)

    def test_transfer_for_another_user_is_refused_before_posting(self):
        self.session.request.return_value = json_response(BOB_ME)

        with self.assertRaises(IdentityMismatchError) as ctx:
            self.ledger.apply_transfer(make_alice(), "AUD", "USD", 100, 0.68)

        self.assertEqual(ctx.exception.actual_user_id, "2")
        self.assertEqual(self.session.request.call_count, 1)
        args, _ = self.session.request.call_args
        self.assertEqual(args, ("GET", "http://ledger.local/me"))

    def test_rejected_token_on_me_is_upstream_failure(self):
        self.session.request.return_value = json_response({"error": "Access token required"})
        with self.assertRaises(UpstreamCallFailure):
            self.ledger.apply_transfer(make_alice(), "AUD", "USD", 100, 0.68)

    def test_anonymous_client_skips_identity_check(self):
        session = mock.Mock()
        session.request.return_value = json_response({"success": True, "balances": []})
        ledger = HttpLedgerStore(LedgerApiClient("http://ledger.local", session=session))

        ledger.apply_transfer(make_alice(), "AUD", "USD", 100, 0.68)

        args, _ = session.request.call_args
        self.assertEqual(session.request.call_count, 1)
        self.assertEqual(args, ("POST", "http://ledger.local/transfer"))

    def test_invalid_json_is_upstream_failure(self):
        response = json_response(None)
        response.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
        self.session.request.return_value = response

        with self.assertRaises(UpstreamCallFailure) as ctx:
            self.ledger.get_all_users()
        self.assertEqual(ctx.exception.status_code, 200)

    def test_user_missing_fields_is_upstream_failure(self):
        for payload in ([{"name": "Alice"}], [{"id": "1"}], ["Alice"], {"users": []}):
            self.session.request.return_value = json_response(payload)
            with self.assertRaises(UpstreamCallFailure):
                self.ledger.get_all_users()

    def test_malformed_balances_are_upstream_failure(self):
        self.session.request.side_effect = [
            json_response(ALICE_ME),
            json_response({"success": True, "balances": [{"currency": "AUD"}]}),
        ]
        with self.assertRaises(UpstreamCallFailure):
            self.ledger.apply_transfer(make_alice(), "AUD", "USD", 100, 0.68)


class HttpRateSourceTests(unittest.TestCase):
    def test_get_and_set_rate(self):
        session = mock.Mock()
        rates = HttpRateSource(LedgerApiClient("http://ledger.local", session=session))

        session.request.return_value = json_response({"fxRate": 0.68})
        self.assertEqual(rates.get_rate(), 0.68)

        rates.set_rate(0.7)
        args, kwargs = session.request.call_args
        self.assertEqual(args, ("PUT", "http://ledger.local/fx"))
        self.assertEqual(kwargs["json"], {"rate": 0.7})
        self.assertNotIn("Authorization", kwargs["headers"])

    def test_malformed_rate_is_upstream_failure(self):
        session = mock.Mock()
        rates = HttpRateSource(LedgerApiClient("http://ledger.local", session=session))

        for payload in ([0.68], {"rate": 0.68}, {"fxRate": "high"}):
            session.request.return_value = json_response(payload)
            with self.assertRaises(UpstreamCallFailure):
                rates.get_rate()


if __name__ == "__main__":
    unittest.main()
