"""Daily reward schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class DailyRewardResult(BaseModel):
    claimed: bool
    amount: int = 0
    new_balance: Optional[int] = None
    reason: Optional[str] = None
    is_first_claim: bool = False


class DailyRewardEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: DailyRewardResult


class DailyRewardStatus(BaseModel):
    can_claim: bool
    reason: Optional[str] = None
    amount: int
    next_claim_at: Optional[datetime] = None  # UTC


class DailyRewardStatusEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: DailyRewardStatus
