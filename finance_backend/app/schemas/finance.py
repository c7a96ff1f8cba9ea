"""
Finance Schemas.

Request and response bodies for the settlement and withdrawal endpoints.
"""

import enum

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from finance_backend.app.models.finance_enums import (
    SettlementType, SettlementStatus, WithdrawalType, WithdrawalStatus, WithdrawTo
)

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Paginated list."""
    items: List[T]
    total: int
    page: int
    page_size: int


# Settlements

class SettlementCreate(BaseModel):
    type: SettlementType
    target_id: int = Field(..., gt=0)
    period_start: date
    period_end: date


class SettlementGenerate(BaseModel):
    type: SettlementType
    period_start: date
    period_end: date


class SettlementResponse(BaseModel):
    id: int
    settlement_no: str
    type: SettlementType
    target_id: int
    period_start: date
    period_end: date
    total_amount: Decimal
    fee: Decimal
    actual_amount: Decimal
    order_count: int
    status: SettlementStatus
    operator_id: Optional[int] = None
    settled_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SettlementDetailResponse(SettlementResponse):
    target_name: str = ""


class BatchItemResponse(BaseModel):
    id: int
    success: bool
    error_code: Optional[str] = None
    message: Optional[str] = None

    class Config:
        from_attributes = True


class SettlementGenerationResponse(BaseModel):
    created: List[SettlementResponse]
    skipped: List[BatchItemResponse]
    failed: List[BatchItemResponse]


# Withdrawals

class WithdrawalResponse(BaseModel):
    id: int
    withdrawal_no: str
    user_id: int
    type: WithdrawalType
    amount: Decimal
    fee: Decimal
    actual_amount: Decimal
    withdraw_to: WithdrawTo
    status: WithdrawalStatus
    reject_reason: Optional[str] = None
    operator_id: Optional[int] = None
    created_at: datetime
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WithdrawalAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    PROCESS = "process"
    COMPLETE = "complete"


class WithdrawalHandle(BaseModel):
    """Single withdrawal audit action."""
    action: WithdrawalAction
    reason: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def check_reason(self):
        if self.action == WithdrawalAction.REJECT and not self.reason:
            raise ValueError("reason is required when rejecting")
        return self


class WithdrawalBatchHandle(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=100)
    action: WithdrawalAction
    reason: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def check_action(self):
        if self.action == WithdrawalAction.PROCESS:
            raise ValueError("action must be one of: approve, reject, complete")
        if self.action == WithdrawalAction.REJECT and not self.reason:
            raise ValueError("reason is required when rejecting")
        return self


class BatchResponse(BaseModel):
    items: List[BatchItemResponse]
    succeeded: List[int]
    failed: List[int]
