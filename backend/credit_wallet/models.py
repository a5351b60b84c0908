"""
Credit Wallet Data Models

Pydantic models for credit ledger and guard outcomes.
"""

from pydantic import BaseModel
from typing import Optional, Union, Literal, Any


CreditValue = Union[int, Literal["Unlimited"]]


# ==================== LEDGER MODELS ====================

class ReserveResult(BaseModel):
    """Outcome of a single credit reservation attempt"""
    reserved: bool
    unlimited: bool = False
    remaining_credits: Optional[CreditValue] = None  # post-reservation, or last known when denied
    reason: Optional[Literal["quota_exceeded", "account_disabled"]] = None

    @property
    def denied(self) -> bool:
        return not self.reserved


class CreditBalance(BaseModel):
    """Current credit state of a client"""
    client_id: str
    remaining_credits: CreditValue
    initial_credits: Optional[CreditValue] = None
    plan_name: Optional[str] = None


# ==================== GUARD MODELS ====================

class GuardOutcome(BaseModel):
    """Result of running a billable call through the verification guard"""
    status: Literal["success", "quota_exceeded", "account_disabled"]
    result: Optional[Any] = None
    remaining_credits: Optional[CreditValue] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"
