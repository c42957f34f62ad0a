from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import discord
from discord.ext import commands

from application.orchestrator import TransferOrchestrator, TransferRequest, TransferResult, TransferState
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
from interfaces.command_args import parse_transfer_args
from interfaces.pending_prompts import PendingPrompts

logger = logging.getLogger(__name__)

PROVIDER = "discord"

OPTION_EMOJIS = ("1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣")
CANCEL_EMOJI = "❌"


def _build_external_context(user: discord.abc.User) -> ExternalContext:
    """Create an `ExternalContext` from a Discord user."""

    return ExternalContext(
        provider=PROVIDER,
        provider_user_id=str(user.id),
        display_name=user.display_name or user.name,
    )


def answer_for_emoji(emoji: str, values: List[str]) -> Optional[Tuple[bool, Optional[str]]]:
    """
    Map a reaction to an answer: (True, value) for a numbered option,
    (False, None) for cancel, None for anything else.
    """

    if emoji == CANCEL_EMOJI:
        return False, None
    if emoji in OPTION_EMOJIS:
        index = OPTION_EMOJIS.index(emoji)
        if index < len(values):
            return True, values[index]
    return None


def create_discord_bot(
    orchestrator: TransferOrchestrator,
    ledger: LedgerStore,
    rate_source: RateSource,
    identity_repo: IdentityRepository,
    require_positive_rate: bool = False,
) -> commands.Bot:
    """
    Configure and return a Discord bot with behaviour analogous to
    the Telegram interface. Choices are answered with numbered reactions.
    """

    intents = discord.Intents.default()
    intents.message_content = True
    intents.reactions = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)

    # Pending transfer choices keyed by the prompt message ID; unanswered
    # ones are dropped after the elicitation timeout.
    prompts = PendingPrompts(orchestrator.elicitation_timeout)

    async def send_transfer_result(channel, author_id: int, result: TransferResult) -> None:
        if result.state is not TransferState.PENDING:
            await channel.send(describe_transfer(result))
            return

        choice = result.pending.choice
        lines = [choice.message]
        for emoji, option in zip(OPTION_EMOJIS, choice.options):
            lines.append(f"{emoji} {option.label}")
        lines.append(f"{CANCEL_EMOJI} Cancel")

        prompt = await channel.send("\n".join(lines))
        values = choice.values()[: len(OPTION_EMOJIS)]
        for emoji in OPTION_EMOJIS[: len(values)]:
            await prompt.add_reaction(emoji)
        await prompt.add_reaction(CANCEL_EMOJI)

        prompts.add(prompt.id, result.pending.token, str(author_id), values)

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(
            "!link <name|id>                           - connect to a ledger user\n"
            "!unlink                                   - disconnect\n"
            "!balance                                  - show your balances\n"
            "!rate                                     - show the AUD/USD rate\n"
            "!setrate <rate>                           - update the rate\n"
            "!check <amount> <from> [below|above x]    - check a transfer\n"
            "!transfer <amount> <from> [to] [below|above x] - transfer funds\n"
        )

    @bot.command(name="link")
    async def link_cmd(ctx: commands.Context, *, wanted: str):
        try:
            identity = identify_user(ledger, user_id=wanted)
            if not identity.success:
                identity = identify_user(ledger, user_name=wanted)
        except UpstreamCallFailure as exc:
            await ctx.send(str(exc))
            return

        if not identity.success:
            text = identity.message
            if identity.candidates:
                text += ". Available users:\n" + describe_users(identity.candidates)
            await ctx.send(text)
            return

        caller = _build_external_context(ctx.author)
        identity_repo.set_external_identity(caller.provider, caller.provider_user_id, identity.user.id)
        logger.info("Linked discord user %s to ledger user %s", caller.provider_user_id, identity.user.id)
        await ctx.send(f"Linked to {identity.user.name}.")

    @bot.command(name="unlink")
    async def unlink_cmd(ctx: commands.Context):
        caller = _build_external_context(ctx.author)
        identity_repo.clear_external_identity(caller.provider, caller.provider_user_id)
        await ctx.send("Unlinked.")

    @bot.command(name="balance")
    async def balance_cmd(ctx: commands.Context):
        result = get_balance(
            ledger,
            caller=_build_external_context(ctx.author),
            identity_repo=identity_repo,
        )
        if not result.success:
            await ctx.send(result.message)
            return
        await ctx.send(describe_balances(result.user, result.accounts))

    @bot.command(name="rate")
    async def rate_cmd(ctx: commands.Context):
        result = get_rate(rate_source)
        await ctx.send(describe_rate(result.rate) if result.success else result.message)

    @bot.command(name="setrate")
    async def setrate_cmd(ctx: commands.Context, rate: float):
        result = update_rate(rate, rate_source, require_positive=require_positive_rate)
        await ctx.send(describe_rate(result.rate) if result.success else result.message)

    @bot.command(name="check")
    async def check_cmd(ctx: commands.Context, *args: str):
        try:
            parsed = parse_transfer_args(list(args))
            identity = identify_user(
                ledger,
                caller=_build_external_context(ctx.author),
                identity_repo=identity_repo,
            )
        except (ValueError, UpstreamCallFailure) as exc:
            await ctx.send(str(exc))
            return

        if not identity.success:
            await ctx.send(identity.message + " Use !link first.")
            return

        result = check_eligibility(
            ledger,
            rate_source,
            identity.user.id,
            parsed.from_currency,
            parsed.amount,
            condition=parsed.condition,
            to_currency=parsed.to_currency,
        )
        await ctx.send(result.message)

    @bot.command(name="transfer")
    async def transfer_cmd(ctx: commands.Context, *args: str):
        try:
            parsed = parse_transfer_args(list(args))
        except ValueError as exc:
            await ctx.send(str(exc))
            return

        result = orchestrator.start_transfer(
            TransferRequest(
                amount=parsed.amount,
                from_currency=parsed.from_currency,
                to_currency=parsed.to_currency,
                caller=_build_external_context(ctx.author),
                rate_condition=parsed.condition,
            )
        )
        await send_transfer_result(ctx.channel, ctx.author.id, result)

    @bot.event
    async def on_reaction_add(reaction: discord.Reaction, user: discord.abc.User):
        # Ignore bot reactions and reactions not on tracked messages.
        if user.bot:
            return

        message_id = reaction.message.id
        entry = prompts.get(message_id)
        if entry is None:
            return

        # Only the user who started the transfer can answer.
        if str(user.id) != entry.requester_id:
            return

        answer = answer_for_emoji(str(reaction.emoji), entry.values)
        if answer is None:
            return

        # Once answered, remove the pending request.
        if prompts.pop(message_id) is None:
            return

        accepted, value = answer
        result = orchestrator.resume_transfer(entry.token, accepted, value)
        await send_transfer_result(reaction.message.channel, user.id, result)

    return bot
