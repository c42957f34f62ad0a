from __future__ import annotations

import logging
import secrets

import telebot
from telebot.types import InlineKeyboardButton, InlineKeyboardMarkup

from application.orchestrator import TransferOrchestrator, TransferRequest, TransferResult, TransferState
from application.resolver import ChoiceRequest
from application.services import (
    ExternalContext,
    check_eligibility,
    get_balance,
    get_rate,
    identify_user,
    update_rate,
)
from application.summaries import describe_balances, describe_rate, describe_transfer, describe_users
from domain.errors import UpstreamCallFailure
from domain.repositories import IdentityRepository, LedgerStore, RateSource
from interfaces.command_args import parse_amount, parse_transfer_args
from interfaces.pending_prompts import PendingPrompts
from interfaces.telegram.callback_data import (
    CANCEL_PREFIX,
    PICK_PREFIX,
    encode_transfer_cancel,
    encode_transfer_choice,
    parse_transfer_callback,
)

logger = logging.getLogger(__name__)

PROVIDER = "telegram"


def _build_external_context(message) -> ExternalContext:
    """Extract a channel-agnostic context object from a Telegram message."""

    return ExternalContext(
        provider=PROVIDER,
        provider_user_id=str(message.from_user.id),
        display_name=message.from_user.first_name or "",
    )


def build_choice_markup(choice: ChoiceRequest, key: str) -> InlineKeyboardMarkup:
    """One button per option plus a cancel button; each carries the prompt key."""

    markup = InlineKeyboardMarkup(row_width=2)
    for option in choice.options:
        markup.add(
            InlineKeyboardButton(
                option.label,
                callback_data=encode_transfer_choice(key, option.value),
            )
        )
    markup.add(InlineKeyboardButton("Cancel", callback_data=encode_transfer_cancel(key)))
    return markup


def send_transfer_result(
    bot: telebot.TeleBot,
    prompts: PendingPrompts,
    chat_id,
    requester_id: str,
    result: TransferResult,
) -> None:
    """Reply with the outcome, or with a keyboard when a choice is pending."""

    if result.state is not TransferState.PENDING:
        bot.send_message(chat_id, describe_transfer(result))
        return

    key = secrets.token_hex(4)
    choice = result.pending.choice
    prompts.add(key, result.pending.token, requester_id, choice.values())
    bot.send_message(chat_id, choice.message, reply_markup=build_choice_markup(choice, key))


def answer_choice(
    bot: telebot.TeleBot,
    prompts: PendingPrompts,
    orchestrator: TransferOrchestrator,
    call,
) -> None:
    """
    Handle a button press on a pending transfer choice.

    Only the Telegram user who started the transfer may answer it; presses
    from anyone else are refused and leave the prompt in place.
    """

    try:
        accepted, value, key = parse_transfer_callback(call.data)
    except ValueError:
        bot.answer_callback_query(call.id, "Invalid selection.")
        return

    entry = prompts.get(key)
    if entry is not None and str(call.from_user.id) != entry.requester_id:
        logger.info("Telegram user %s tried to answer a transfer of %s", call.from_user.id, entry.requester_id)
        bot.answer_callback_query(call.id, "Only the user who started this transfer can answer.")
        return

    entry = prompts.pop(key)
    try:
        if entry is None:
            bot.answer_callback_query(call.id, "This choice has expired.")
            return

        result = orchestrator.resume_transfer(entry.token, accepted, value)
        send_transfer_result(bot, prompts, call.message.chat.id, entry.requester_id, result)
    finally:
        bot.delete_message(call.message.chat.id, call.message.id)


def create_telegram_bot(
    bot_token: str,
    orchestrator: TransferOrchestrator,
    ledger: LedgerStore,
    rate_source: RateSource,
    identity_repo: IdentityRepository,
    require_positive_rate: bool = False,
) -> telebot.TeleBot:
    """
    Configure and return a TeleBot instance wired to the application layer.

    This module contains only Telegram-specific concerns: parsing Telegram
    messages/callbacks and mapping them to/from application services.
    """

    bot = telebot.TeleBot(bot_token)
    prompts = PendingPrompts(orchestrator.elicitation_timeout)

    @bot.message_handler(commands=["start", "hello"])
    def handle_start(message):
        bot.send_message(
            message.chat.id,
            "Welcome to the currency transfer bot!\n"
            "Use /link <name> to connect your ledger account.\n"
            "Type /help to see available commands.",
        )

    @bot.message_handler(commands=["help"])
    def handle_help(message):
        bot.send_message(
            message.chat.id,
            "/link <name|id>                          - connect to a ledger user\n"
            "/unlink                                  - disconnect\n"
            "/balance                                 - show your balances\n"
            "/rate                                    - show the AUD/USD rate\n"
            "/setrate <rate>                          - update the rate\n"
            "/check <amount> <from> [below|above x]   - check a transfer\n"
            "/transfer <amount> <from> [to] [below|above x] - transfer funds\n",
        )

    @bot.message_handler(commands=["link"])
    def handle_link(message):
        parts = message.text.split(maxsplit=1)
        if len(parts) < 2:
            bot.send_message(message.chat.id, "Please enter a user name or ID.")
            return

        wanted = parts[1].strip()
        try:
            identity = identify_user(ledger, user_id=wanted)
            if not identity.success:
                identity = identify_user(ledger, user_name=wanted)
        except UpstreamCallFailure as exc:
            bot.send_message(message.chat.id, str(exc))
            return

        if not identity.success:
            text = identity.message
            if identity.candidates:
                text += ". Available users:\n" + describe_users(identity.candidates)
            bot.send_message(message.chat.id, text)
            return

        ctx = _build_external_context(message)
        identity_repo.set_external_identity(ctx.provider, ctx.provider_user_id, identity.user.id)
        logger.info("Linked telegram user %s to ledger user %s", ctx.provider_user_id, identity.user.id)
        bot.send_message(message.chat.id, f"Linked to {identity.user.name}.")

    @bot.message_handler(commands=["unlink"])
    def handle_unlink(message):
        ctx = _build_external_context(message)
        identity_repo.clear_external_identity(ctx.provider, ctx.provider_user_id)
        bot.send_message(message.chat.id, "Unlinked.")

    @bot.message_handler(commands=["balance"])
    def handle_balance(message):
        result = get_balance(
            ledger,
            caller=_build_external_context(message),
            identity_repo=identity_repo,
        )
        if not result.success:
            bot.send_message(message.chat.id, result.message)
            return
        bot.send_message(message.chat.id, describe_balances(result.user, result.accounts))

    @bot.message_handler(commands=["rate"])
    def handle_rate(message):
        result = get_rate(rate_source)
        if not result.success:
            bot.send_message(message.chat.id, result.message)
            return
        bot.send_message(message.chat.id, describe_rate(result.rate))

    @bot.message_handler(commands=["setrate"])
    def handle_set_rate(message):
        parts = message.text.split()
        if len(parts) < 2:
            bot.send_message(message.chat.id, "Please enter the new rate.")
            return

        try:
            rate = parse_amount(parts[1])
        except ValueError:
            bot.send_message(message.chat.id, "Rate must be a number.")
            return

        result = update_rate(rate, rate_source, require_positive=require_positive_rate)
        if not result.success:
            bot.send_message(message.chat.id, result.message)
            return
        bot.send_message(message.chat.id, describe_rate(result.rate))

    @bot.message_handler(commands=["check"])
    def handle_check(message):
        ctx = _build_external_context(message)
        try:
            args = parse_transfer_args(message.text.split()[1:])
        except ValueError as exc:
            bot.send_message(message.chat.id, str(exc))
            return

        try:
            identity = identify_user(ledger, caller=ctx, identity_repo=identity_repo)
        except UpstreamCallFailure as exc:
            bot.send_message(message.chat.id, str(exc))
            return

        if not identity.success:
            bot.send_message(message.chat.id, identity.message + " Use /link first.")
            return

        result = check_eligibility(
            ledger,
            rate_source,
            identity.user.id,
            args.from_currency,
            args.amount,
            condition=args.condition,
            to_currency=args.to_currency,
        )
        bot.send_message(message.chat.id, result.message)

    @bot.message_handler(commands=["transfer"])
    def handle_transfer(message):
        try:
            args = parse_transfer_args(message.text.split()[1:])
        except ValueError as exc:
            bot.send_message(message.chat.id, str(exc))
            return

        result = orchestrator.start_transfer(
            TransferRequest(
                amount=args.amount,
                from_currency=args.from_currency,
                to_currency=args.to_currency,
                caller=_build_external_context(message),
                rate_condition=args.condition,
            )
        )
        send_transfer_result(bot, prompts, message.chat.id, str(message.from_user.id), result)

    @bot.callback_query_handler(
        func=lambda call: call.data.startswith(PICK_PREFIX + ":")
        or call.data.startswith(CANCEL_PREFIX + ":")
    )
    def handle_choice(call):
        answer_choice(bot, prompts, orchestrator, call)

    return bot

