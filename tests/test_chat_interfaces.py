import unittest
from types import SimpleNamespace
from unittest import mock

from application.orchestrator import TransferOrchestrator, TransferRequest
from application.resolver import ChoiceOption, ChoiceRequest
from domain.models import Account, RateCondition, User
from infrastructure.memory.ledger_store import InMemoryLedgerStore, InMemoryRateSource
from interfaces.discord.handlers import CANCEL_EMOJI, OPTION_EMOJIS, answer_for_emoji
from interfaces.pending_prompts import PendingPrompts
from interfaces.telegram.callback_data import (
    MAX_CALLBACK_DATA,
    encode_transfer_cancel,
    encode_transfer_choice,
    parse_transfer_callback,
)
from interfaces.telegram.handlers import answer_choice, build_choice_markup, send_transfer_result

KEY = "9f3a61c2"
ALICE_TELEGRAM_ID = 555
MALLORY_TELEGRAM_ID = 666


def make_call(data: str, from_user_id: int):
    return SimpleNamespace(
        id="cb-1",
        data=data,
        from_user=SimpleNamespace(id=from_user_id),
        message=SimpleNamespace(id=10, chat=SimpleNamespace(id=-100)),
    )


class TelegramMarkupTests(unittest.TestCase):
    def test_buttons_carry_key_and_value(self):
        choice = ChoiceRequest(
            field="toCurrency",
            title="Target Currency",
            message="Transfer 100 AUD to which currency account?",
            options=[ChoiceOption("USD", "USD (Balance: 500)")],
        )
        markup = build_choice_markup(choice, KEY)
        buttons = [button for row in markup.keyboard for button in row]

        self.assertEqual([b.text for b in buttons], ["USD (Balance: 500)", "Cancel"])
        self.assertEqual(parse_transfer_callback(buttons[0].callback_data), (True, "USD", KEY))
        self.assertEqual(parse_transfer_callback(buttons[1].callback_data), (False, None, KEY))


class TelegramChoiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ledger = InMemoryLedgerStore(
            [
                User(
                    id="1",
                    name="Alice",
                    accounts=[Account("AUD", 500_000_000.0), Account("USD", 500.0)],
                )
            ]
        )
        self.orchestrator = TransferOrchestrator(self.ledger, InMemoryRateSource(0.68))
        self.prompts = PendingPrompts(300)
        self.bot = mock.Mock()

    def start(self, amount=100.0, condition=None) -> str:
        """Start a transfer that waits for a target currency and return the prompt key."""

        result = self.orchestrator.start_transfer(
            TransferRequest(amount=amount, from_currency="AUD", user_id="1", rate_condition=condition)
        )
        send_transfer_result(self.bot, self.prompts, -100, str(ALICE_TELEGRAM_ID), result)

        markup = self.bot.send_message.call_args.kwargs["reply_markup"]
        data = markup.keyboard[0][0].callback_data
        return parse_transfer_callback(data)[2]

    def aud_balance(self) -> float:
        return self.ledger.find_user("1").get_account("AUD").balance

    def test_large_amounts_still_fit_in_callback_data(self):
        self.start(amount=123456789.123456, condition=RateCondition("above", 0.6512345678))

        markup = self.bot.send_message.call_args.kwargs["reply_markup"]
        for row in markup.keyboard:
            for button in row:
                self.assertLessEqual(len(button.callback_data.encode("utf-8")), MAX_CALLBACK_DATA)

    def test_owner_answer_commits(self):
        key = self.start()
        self.bot.reset_mock()

        call = make_call(encode_transfer_choice(key, "USD"), ALICE_TELEGRAM_ID)
        answer_choice(self.bot, self.prompts, self.orchestrator, call)

        text = self.bot.send_message.call_args.args[1]
        self.assertIn("Transfer completed successfully!", text)
        self.assertEqual(self.aud_balance(), 500_000_000.0 - 100.0)
        self.bot.delete_message.assert_called_once_with(-100, 10)

    def test_other_user_cannot_answer(self):
        key = self.start()
        self.bot.reset_mock()

        for data in (encode_transfer_choice(key, "USD"), encode_transfer_cancel(key)):
            answer_choice(self.bot, self.prompts, self.orchestrator, make_call(data, MALLORY_TELEGRAM_ID))

        self.assertEqual(self.aud_balance(), 500_000_000.0)
        self.bot.send_message.assert_not_called()
        self.bot.delete_message.assert_not_called()
        self.assertEqual(
            self.bot.answer_callback_query.call_args.args,
            ("cb-1", "Only the user who started this transfer can answer."),
        )

        # The owner can still answer afterwards.
        call = make_call(encode_transfer_choice(key, "USD"), ALICE_TELEGRAM_ID)
        answer_choice(self.bot, self.prompts, self.orchestrator, call)
        self.assertEqual(self.aud_balance(), 500_000_000.0 - 100.0)

    def test_second_press_is_refused(self):
        key = self.start()
        call = make_call(encode_transfer_choice(key, "USD"), ALICE_TELEGRAM_ID)

        answer_choice(self.bot, self.prompts, self.orchestrator, call)
        answer_choice(self.bot, self.prompts, self.orchestrator, call)

        self.assertEqual(self.aud_balance(), 500_000_000.0 - 100.0)
        self.assertEqual(
            self.bot.answer_callback_query.call_args.args,
            ("cb-1", "This choice has expired."),
        )

    def test_cancel_leaves_balances(self):
        key = self.start()
        self.bot.reset_mock()

        call = make_call(encode_transfer_cancel(key), ALICE_TELEGRAM_ID)
        answer_choice(self.bot, self.prompts, self.orchestrator, call)

        self.assertEqual(self.bot.send_message.call_args.args[1], "Transfer cancelled - no target currency selected")
        self.assertEqual(self.aud_balance(), 500_000_000.0)


class DiscordReactionTests(unittest.TestCase):
    def test_numbered_reaction_picks_option(self):
        self.assertEqual(answer_for_emoji(OPTION_EMOJIS[1], ["1", "2"]), (True, "2"))

    def test_cancel_reaction(self):
        self.assertEqual(answer_for_emoji(CANCEL_EMOJI, ["1"]), (False, None))

    def test_unrelated_reactions_are_ignored(self):
        self.assertIsNone(answer_for_emoji(OPTION_EMOJIS[3], ["1"]))
        self.assertIsNone(answer_for_emoji("👍", ["1"]))


if __name__ == "__main__":
    unittest.main()
