"""
Pydantic models/schemas for the application
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional, Union, Literal
from datetime import datetime


# ==================== CLIENT AUTH MODELS ====================

class ClientLogin(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    force: bool = False

class TerminateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action_token: str = Field(..., alias="actionToken", min_length=1)


# ==================== ADMIN AUTH MODELS ====================

class AdminLogin(BaseModel):
    username: str
    password: str


# ==================== VERIFICATION MODELS ====================

class AddressRequest(BaseModel):
    address: str = Field(..., min_length=1, max_length=2000)
    customerName: Optional[str] = Field(default=None, max_length=200)

class AccessCodeRequest(BaseModel):
    code: str


# ==================== CLIENT ADMIN MODELS ====================

class ClientCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    planName: str = Field(..., min_length=1)
    validity: datetime
    clientName: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    businessName: Optional[str] = None
    businessType: Optional[str] = None

class ClientUpdate(BaseModel):
    """Admin edit. Unknown keys are ignored."""
    clientName: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    businessName: Optional[str] = None
    businessType: Optional[str] = None
    password: Optional[str] = None
    validity: Optional[datetime] = None
    isActive: Optional[bool] = None
    clearSession: Optional[bool] = None
    planName: Optional[str] = None
    keepRemainingCredits: Optional[bool] = None

class CreditAdjustment(BaseModel):
    action: Literal["add", "set"]
    addCredits: Optional[int] = None
    remainingCredits: Optional[Union[int, str]] = None


# ==================== BULK JOB MODELS ====================

class BulkJobSubmit(BaseModel):
    filename: str = Field(..., min_length=1)
    csvData: str = Field(..., min_length=1)
    totalRows: Optional[int] = None

class BulkJob(BaseModel):
    id: str
    clientId: str
    filename: str
    totalRows: int
    processedCount: int = 0
    successCount: int = 0
    status: str
    submittedAt: Optional[datetime] = None
    startTime: Optional[datetime] = None
    completedTime: Optional[datetime] = None
    error: Optional[str] = None

class BulkJobList(BaseModel):
    status: str = "Success"
    jobs: List[BulkJob]
