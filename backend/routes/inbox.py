"""
Inbox routes - messages between the admin and clients
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from database import get_db
from models.messages import InboxMessageCreate, InboxResponse
from services.messaging_service import MessagingService
from utils.auth import get_inbox_identity

logger = logging.getLogger(__name__)

inbox_router = APIRouter(tags=["Inbox"])


def get_messaging_service(db=Depends(get_db)) -> MessagingService:
    return MessagingService(db)


@inbox_router.get("/messages", response_model=InboxResponse)
async def get_inbox(
    user_id: str = Depends(get_inbox_identity),
    service: MessagingService = Depends(get_messaging_service)
):
    result = await service.list_inbox(user_id)
    return {"status": "Success", **result}


@inbox_router.post("/messages", status_code=201)
async def send_message(
    data: InboxMessageCreate,
    user_id: str = Depends(get_inbox_identity),
    service: MessagingService = Depends(get_messaging_service)
):
    try:
        message = await service.send_message(user_id, data.subject, data.body, data.recipientId)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "Success", "message": "Message sent.", "messageId": message["id"]}


@inbox_router.put("/messages/{message_id}/read")
async def mark_read(
    message_id: str,
    user_id: str = Depends(get_inbox_identity),
    service: MessagingService = Depends(get_messaging_service)
):
    if not await service.mark_read(message_id, user_id):
        raise HTTPException(status_code=403, detail="Message not found or unauthorized to mark as read.")
    return {"status": "Success", "message": "Message marked as read."}
