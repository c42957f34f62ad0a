from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.models import RateCondition

Currency = Literal["AUD", "USD"]


class ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class RateConditionInput(ToolInput):
    operator: Literal["below", "above"]
    value: float = Field(..., description="Threshold the live rate is compared against")

    def to_domain(self) -> RateCondition:
        return RateCondition(operator=self.operator, threshold=self.value)


class GetUserBalanceInput(ToolInput):
    user_id: Optional[str] = Field(None, alias="userId")
    user_name: Optional[str] = Field(None, alias="userName")


class GetFxRateInput(ToolInput):
    pass


class CheckTransferEligibilityInput(ToolInput):
    user_id: str = Field(..., alias="userId")
    from_currency: Currency = Field(..., alias="fromCurrency")
    amount: float
    fx_rate_condition: Optional[RateConditionInput] = Field(None, alias="fxRateCondition")


class TransferFundsInput(ToolInput):
    user_id: Optional[str] = Field(None, alias="userId")
    user_name: Optional[str] = Field(None, alias="userName")
    amount: float
    from_currency: Currency = Field(..., alias="fromCurrency")
    to_currency: Optional[Currency] = Field(None, alias="toCurrency")
    fx_rate_condition: Optional[RateConditionInput] = Field(None, alias="fxRateCondition")
