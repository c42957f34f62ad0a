from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from application.orchestrator import (
    Elicitor,
    TransferOrchestrator,
    TransferRequest,
    TransferResult,
    TransferState,
)
from application.services import check_eligibility, get_balance, get_rate, list_users
from application.summaries import describe_balances, describe_rate, describe_transfer, describe_users
from domain.errors import FailureReason, UpstreamCallFailure
from domain.repositories import LedgerStore, RateSource
from interfaces.agent.prompts import transfer_assistant_prompt
from interfaces.agent.schemas import (
    CheckTransferEligibilityInput,
    GetFxRateInput,
    GetUserBalanceInput,
    TransferFundsInput,
)

logger = logging.getLogger(__name__)

USERS_RESOURCE = "bank://users"
FX_RATE_RESOURCE = "bank://fx-rate"

# Failures that are an answer rather than an error from the agent's
# point of view.
_SOFT_FAILURES = (
    FailureReason.INSUFFICIENT_FUNDS,
    FailureReason.RATE_CONDITION_NOT_MET,
    FailureReason.RESOLUTION_CANCELLED,
)


@dataclass
class ToolResult:
    """
    What a tool call hands back to the agent: readable text, structured
    content and, for a transfer waiting on a choice, the elicitation to
    forward to the human.
    """

    text: str
    structured: Dict[str, Any] = field(default_factory=dict)
    is_error: bool = False
    elicitation: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ToolSpec:
    name: str
    title: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[Any], ToolResult]

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_model.model_json_schema(),
        }


def _error(text: str, **structured: Any) -> ToolResult:
    return ToolResult(text=text, structured=structured, is_error=True)


class AgentToolbox:
    """
    Named operations exposed to a calling agent.

    Arguments are validated against the declared pydantic models before
    anything touches the ledger. When an `elicitor` is supplied, transfers
    block on it for missing fields; otherwise the pending choice is
    returned and `resume_elicitation` continues it.
    """

    def __init__(
        self,
        orchestrator: TransferOrchestrator,
        ledger: LedgerStore,
        rate_source: RateSource,
        elicitor: Optional[Elicitor] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._ledger = ledger
        self._rate_source = rate_source
        self._elicitor = elicitor
        self._tools: Dict[str, ToolSpec] = {
            spec.name: spec
            for spec in (
                ToolSpec(
                    "get-user-balance",
                    "Get User Balance",
                    "Get account balances for a specific user",
                    GetUserBalanceInput,
                    self._get_user_balance,
                ),
                ToolSpec(
                    "get-fx-rate",
                    "Get Exchange Rate",
                    "Get current AUD to USD exchange rate",
                    GetFxRateInput,
                    self._get_fx_rate,
                ),
                ToolSpec(
                    "check-transfer-eligibility",
                    "Check Transfer Eligibility",
                    "Verify if a transfer can be made based on balance and conditions",
                    CheckTransferEligibilityInput,
                    self._check_transfer_eligibility,
                ),
                ToolSpec(
                    "transfer-funds",
                    "Transfer Funds",
                    "Transfer funds between accounts with optional FX rate condition",
                    TransferFundsInput,
                    self._transfer_funds,
                ),
            )
        }

    def list_tools(self) -> List[Dict[str, Any]]:
        return [spec.describe() for spec in self._tools.values()]

    def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        spec = self._tools.get(name)
        if spec is None:
            return _error(f"Unknown tool: {name}")

        try:
            params = spec.input_model.model_validate(arguments or {})
        except ValidationError as exc:
            return _error(f"Invalid arguments for {name}: {exc}")

        logger.debug("Calling tool %s", name)
        return spec.handler(params)

    def resume_elicitation(
        self,
        token: str,
        action: str,
        content: Optional[Dict[str, Any]] = None,
    ) -> ToolResult:
        """
        Continue a transfer with the client's elicitation response.
        `action` is "accept", "decline" or "cancel".
        """

        field_name = self._orchestrator.pending_field(token)
        value = (content or {}).get(field_name) if field_name else None
        result = self._orchestrator.resume_transfer(
            token,
            accepted=action == "accept",
            value=str(value) if value is not None else None,
        )
        return self._transfer_result(result)

    def read_resource(self, uri: str) -> ToolResult:
        """JSON contents of a read-only resource."""

        try:
            if uri == USERS_RESOURCE:
                payload: Any = [asdict(u) for u in list_users(self._ledger)]
            elif uri == FX_RATE_RESOURCE:
                payload = {"fxRate": self._rate_source.get_rate()}
            else:
                return _error(f"Unknown resource: {uri}")
        except UpstreamCallFailure as exc:
            logger.warning("Reading %s failed: %s", uri, exc)
            return _error(f"Error reading {uri}: {exc}", reason=FailureReason.UPSTREAM_CALL_FAILURE.value)

        return ToolResult(text=json.dumps(payload, indent=2), structured={"contents": payload})

    def get_prompt(self, user_request: str) -> ToolResult:
        try:
            users = list_users(self._ledger)
        except UpstreamCallFailure as exc:
            logger.warning("Building the transfer prompt failed: %s", exc)
            return _error(f"Error fetching users: {exc}", reason=FailureReason.UPSTREAM_CALL_FAILURE.value)
        return ToolResult(text=transfer_assistant_prompt(user_request, users))

    def _get_user_balance(self, params: GetUserBalanceInput) -> ToolResult:
        result = get_balance(self._ledger, user_id=params.user_id, user_name=params.user_name)
        if result.success:
            return ToolResult(
                text=describe_balances(result.user, result.accounts),
                structured={"user": asdict(result.user)},
            )

        if result.reason is FailureReason.UPSTREAM_CALL_FAILURE:
            return _error(f"Error fetching user balance: {result.message}")

        text = result.message
        if result.candidates:
            text += " Available users:\n" + describe_users(result.candidates)
        return ToolResult(
            text=text,
            structured={"users": [asdict(u) for u in result.candidates]},
        )

    def _get_fx_rate(self, params: GetFxRateInput) -> ToolResult:
        result = get_rate(self._rate_source)
        if not result.success:
            return _error(f"Error fetching FX rate: {result.message}")
        return ToolResult(text=describe_rate(result.rate), structured={"fxRate": result.rate})

    def _check_transfer_eligibility(self, params: CheckTransferEligibilityInput) -> ToolResult:
        condition = params.fx_rate_condition.to_domain() if params.fx_rate_condition else None
        result = check_eligibility(
            self._ledger,
            self._rate_source,
            params.user_id,
            params.from_currency,
            params.amount,
            condition=condition,
        )
        return ToolResult(
            text=result.message,
            structured={
                "eligible": result.eligible,
                "reason": result.reason.value if result.reason else None,
                "balance": result.balance,
                "rate": result.rate,
            },
            is_error=result.reason is not None and result.reason not in _SOFT_FAILURES,
        )

    def _transfer_funds(self, params: TransferFundsInput) -> ToolResult:
        request = TransferRequest(
            amount=params.amount,
            from_currency=params.from_currency,
            to_currency=params.to_currency,
            user_id=params.user_id,
            user_name=params.user_name,
            rate_condition=(
                params.fx_rate_condition.to_domain() if params.fx_rate_condition else None
            ),
        )
        if self._elicitor is not None:
            result = self._orchestrator.run_transfer(request, self._elicitor)
        else:
            result = self._orchestrator.start_transfer(request)
        return self._transfer_result(result)

    @staticmethod
    def _transfer_result(result: TransferResult) -> ToolResult:
        structured: Dict[str, Any] = {
            "state": result.state.value,
            "message": result.message,
            "reason": result.reason.value if result.reason else None,
        }

        if result.state is TransferState.PENDING:
            choice = result.pending.choice
            return ToolResult(
                text=result.message,
                structured=structured,
                elicitation={
                    "message": choice.message,
                    "requestedSchema": choice.to_schema(),
                    "token": result.pending.token,
                },
            )

        if result.state is TransferState.COMMITTED:
            structured.update(
                convertedAmount=result.converted_amount,
                rate=result.rate,
                balances=[asdict(a) for a in result.balances],
            )

        return ToolResult(
            text=describe_transfer(result),
            structured=structured,
            is_error=result.state is TransferState.ABORTED and result.reason not in _SOFT_FAILURES,
        )
