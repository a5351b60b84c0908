"""
Support Routes for Smart Locator
Public contact form; the admin reads submissions under /admin/support
"""
from fastapi import APIRouter, Depends
import logging

from database import get_db
from models.messages import SupportMessageCreate
from services.messaging_service import MessagingService

logger = logging.getLogger(__name__)

support_router = APIRouter(prefix="/support", tags=["Support"])


def get_messaging_service(db=Depends(get_db)):
    """Dependency to get messaging service instance"""
    return MessagingService(db)


# ==================== PUBLIC ENDPOINTS ====================

@support_router.post("/message", status_code=201)
async def create_support_message(
    request: SupportMessageCreate,
    service: MessagingService = Depends(get_messaging_service)
):
    """Store a contact-form message for the admin (no login required)"""
    await service.create_support_message(
        client_name=request.clientName,
        client_email=request.clientEmail,
        message_text=request.messageText
    )
    return {"status": "Success", "message": "Your message has been sent to the admin."}
