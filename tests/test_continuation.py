import unittest

from application.continuation import (
    AWAITING_CURRENCY,
    AWAITING_USER,
    PendingTransfer,
    encode_pending_transfer,
    parse_pending_transfer,
)
from domain.models import RateCondition


class ContinuationTokenTests(unittest.TestCase):
    def test_token_restores_full_state(self):
        pending = PendingTransfer(
            amount=100.5,
            from_currency="AUD",
            user_id="1",
            rate_condition=RateCondition("below", 0.7),
            awaiting=AWAITING_CURRENCY,
            issued_at=1700000000,
            nonce="9f3a61c2",
        )
        self.assertEqual(parse_pending_transfer(encode_pending_transfer(pending)), pending)

    def test_token_without_user_or_condition(self):
        pending = PendingTransfer(
            amount=5.0,
            from_currency="USD",
            awaiting=AWAITING_USER,
            issued_at=42,
        )
        token = encode_pending_transfer(pending)
        self.assertEqual(token, "u:-:5.0:USD:-:-:-:42:-")
        self.assertEqual(parse_pending_transfer(token), pending)

    def test_with_answer_fills_awaited_field(self):
        pending = PendingTransfer(amount=1.0, from_currency="AUD", awaiting=AWAITING_USER)
        self.assertEqual(pending.with_answer("2").user_id, "2")

        pending = PendingTransfer(amount=1.0, from_currency="AUD", user_id="1", awaiting=AWAITING_CURRENCY)
        self.assertEqual(pending.with_answer("USD").to_currency, "USD")

    def test_only_awaiting_states_encode(self):
        with self.assertRaises(ValueError):
            encode_pending_transfer(PendingTransfer(amount=1.0, from_currency="AUD"))

    def test_malformed_tokens_are_rejected(self):
        for token in (
            "",
            "x:1:1.0:AUD:-:-:-:1:-",
            "c:1:abc:AUD:-:-:-:1:-",
            "c:1:1.0:AUD:-:sideways:1:1:-",
            "c:1:1.0:AUD:-:-:-:1",
            "c:1",
        ):
            with self.assertRaises(ValueError):
                parse_pending_transfer(token)


if __name__ == "__main__":
    unittest.main()
