from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from domain.currency import format_amount
from domain.models import User

USER_FIELD = "userId"
CURRENCY_FIELD = "toCurrency"


@dataclass(frozen=True)
class ChoiceOption:
    value: str
    label: str


@dataclass(frozen=True)
class ChoiceRequest:
    """
    An enumerated request for a single missing parameter.

    Channels render it however suits them (inline keyboard, reactions,
    or the JSON schema an agent client understands).
    """

    field: str
    title: str
    message: str
    options: List[ChoiceOption] = field(default_factory=list)

    def values(self) -> List[str]:
        return [option.value for option in self.options]

    def to_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                self.field: {
                    "type": "string",
                    "title": self.title,
                    "enum": self.values(),
                    "enumNames": [option.label for option in self.options],
                }
            },
            "required": [self.field],
        }


def user_choices(users: List[User]) -> ChoiceRequest:
    return ChoiceRequest(
        field=USER_FIELD,
        title="User",
        message="Please select the user for this transfer:",
        options=[ChoiceOption(u.id, f"{u.name} (ID: {u.id})") for u in users],
    )


def currency_choices(user: User, from_currency: str, amount: float) -> ChoiceRequest:
    """
    Offer every currency the user holds except the source. An empty
    option list means there is nothing to ask; the caller must fail
    instead of prompting.
    """

    options = [
        ChoiceOption(a.currency, f"{a.currency} (Balance: {format_amount(a.balance)})")
        for a in user.accounts
        if a.currency != from_currency
    ]
    return ChoiceRequest(
        field=CURRENCY_FIELD,
        title="Target Currency",
        message=f"Transfer {format_amount(amount)} {from_currency} to which currency account?",
        options=options,
    )


def resolve_answer(choice: ChoiceRequest, accepted: bool, value: Optional[str]) -> Optional[str]:
    """
    Return the chosen value, or None when the answer amounts to a
    cancellation (declined, missing, or outside the offered set).
    """

    if not accepted or not value:
        return None
    if value not in choice.values():
        return None
    return value
