"""
Inbox and Support Message Models for Smart Locator
"""
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime


# ==================== REQUEST MODELS ====================
class InboxMessageCreate(BaseModel):
    """Client messages always go to the admin; the admin names recipientId"""
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1, max_length=5000)
    recipientId: Optional[str] = None


class SupportMessageCreate(BaseModel):
    """Public contact form"""
    clientName: str = Field(..., min_length=1, max_length=100)
    clientEmail: EmailStr
    messageText: str = Field(..., min_length=1, max_length=5000)


# ==================== RESPONSE MODELS ====================
class InboxMessage(BaseModel):
    id: str
    senderId: str
    receiverId: str
    subject: str
    body: str
    isRead: bool = False
    timestamp: datetime


class InboxResponse(BaseModel):
    status: str = "Success"
    messages: List[InboxMessage]
    unreadCount: int


class SupportMessage(BaseModel):
    id: str
    clientName: str
    clientEmail: str
    messageText: str
    receivedAt: datetime
    isRead: bool = False


class SupportListResponse(BaseModel):
    status: str = "Success"
    messages: List[SupportMessage]
    unreadCount: int
