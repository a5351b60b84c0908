"""
Admin routes - client accounts, credits, sessions and support inbox
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from database import get_db
from credit_wallet.config import ERROR_CODES
from models.messages import SupportListResponse
from models.schemas import AdminLogin, ClientCreate, ClientUpdate, CreditAdjustment
from services.client_admin_service import ClientAdminService
from services.messaging_service import MessagingService
from services.session_service import SessionManager
from utils.auth import get_admin_user, verify_password, create_admin_token
from utils.errors import UsernameTakenError
from utils.settings import get_auth_settings

logger = logging.getLogger(__name__)

admin_router = APIRouter(tags=["Admin"])


def get_client_admin_service(db=Depends(get_db)) -> ClientAdminService:
    return ClientAdminService(db)


def get_messaging_service(db=Depends(get_db)) -> MessagingService:
    return MessagingService(db)


@admin_router.post("/login")
async def admin_login(data: AdminLogin):
    """Admin credentials come from ADMIN_USERNAME / ADMIN_PASSWORD_HASH"""
    settings = get_auth_settings()
    if not settings.admin_username or not settings.admin_password_hash:
        logger.error("Admin login attempted but ADMIN_USERNAME / ADMIN_PASSWORD_HASH are not configured")
        raise HTTPException(status_code=500, detail="Server configuration error.")

    if data.username != settings.admin_username or not verify_password(data.password, settings.admin_password_hash):
        raise HTTPException(status_code=401, detail=ERROR_CODES["INVALID_CREDENTIALS"])

    return {
        "status": "Success",
        "message": "Admin access granted.",
        "token": create_admin_token(data.username, settings)
    }


# ==================== CLIENTS ====================

@admin_router.get("/clients")
async def list_clients(
    admin: dict = Depends(get_admin_user),
    service: ClientAdminService = Depends(get_client_admin_service)
):
    return {"status": "Success", "data": await service.list_clients()}


@admin_router.post("/clients", status_code=201)
async def add_client(
    data: ClientCreate,
    admin: dict = Depends(get_admin_user),
    service: ClientAdminService = Depends(get_client_admin_service)
):
    try:
        client = await service.add_client(data.model_dump())
    except UsernameTakenError:
        raise HTTPException(status_code=409, detail="Username already exists.")
    return {"status": "Success", "message": "Client added successfully.", "clientId": client["id"], "data": client}


@admin_router.put("/clients/{client_id}")
async def update_client(
    client_id: str,
    data: ClientUpdate,
    admin: dict = Depends(get_admin_user),
    service: ClientAdminService = Depends(get_client_admin_service)
):
    client = await service.update_client(client_id, data.model_dump(exclude_none=True))
    return {"status": "Success", "message": "Client updated successfully.", "data": client}


@admin_router.delete("/clients/{client_id}")
async def delete_client(
    client_id: str,
    admin: dict = Depends(get_admin_user),
    service: ClientAdminService = Depends(get_client_admin_service)
):
    if not await service.delete_client(client_id):
        raise HTTPException(status_code=404, detail="Client not found.")
    return {"status": "Success", "message": "Client deleted successfully."}


@admin_router.post("/clients/{client_id}/credits")
async def adjust_credits(
    client_id: str,
    data: CreditAdjustment,
    admin: dict = Depends(get_admin_user),
    service: ClientAdminService = Depends(get_client_admin_service)
):
    """action=add tops up atomically; action=set writes a number or Unlimited"""
    try:
        client = await service.adjust_credits(
            client_id,
            data.action,
            add_credits=data.addCredits,
            remaining_credits=data.remainingCredits
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    message = "Credits added." if data.action == "add" else "remainingCredits set."
    return {"status": "Success", "message": message, "remainingCredits": client.get("remainingCredits")}


@admin_router.post("/clients/{client_id}/force-logout")
async def force_logout(client_id: str, admin: dict = Depends(get_admin_user), db=Depends(get_db)):
    manager = SessionManager(db, get_auth_settings())
    if not await manager.force_logout_by_admin(client_id):
        raise HTTPException(status_code=404, detail="Client not found.")
    return {"status": "Success", "message": "Client session cleared."}


# ==================== SUPPORT INBOX ====================

@admin_router.get("/support", response_model=SupportListResponse)
async def list_support_messages(
    admin: dict = Depends(get_admin_user),
    service: MessagingService = Depends(get_messaging_service)
):
    result = await service.list_support_messages()
    return {"status": "Success", **result}


@admin_router.put("/support/{message_id}/read")
async def mark_support_read(
    message_id: str,
    admin: dict = Depends(get_admin_user),
    service: MessagingService = Depends(get_messaging_service)
):
    if not await service.mark_support_read(message_id):
        raise HTTPException(status_code=404, detail="Message not found.")
    return {"status": "Success", "message": "Message marked as read."}


@admin_router.delete("/support/{message_id}")
async def delete_support_message(
    message_id: str,
    admin: dict = Depends(get_admin_user),
    service: MessagingService = Depends(get_messaging_service)
):
    if not await service.delete_support_message(message_id):
        raise HTTPException(status_code=404, detail="Message not found.")
    return {"status": "Success", "message": "Message deleted."}
