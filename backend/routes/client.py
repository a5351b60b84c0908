"""
Client session routes - login, session takeover, logout, heartbeat, profile
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
import logging

from database import get_db
from credit_wallet.config import ERROR_CODES
from models.schemas import ClientLogin, TerminateSessionRequest
from services.session_service import SessionManager, build_plan_details
from utils.auth import security, get_current_client
from utils.settings import get_auth_settings

logger = logging.getLogger(__name__)

client_router = APIRouter(tags=["Client"])


def get_session_manager(db=Depends(get_db)) -> SessionManager:
    """Dependency to get a session manager bound to the request database"""
    return SessionManager(db, get_auth_settings())


@client_router.post("/login")
async def login(data: ClientLogin, manager: SessionManager = Depends(get_session_manager)):
    """
    Log in. If another device holds the session and force is false, the response
    carries alreadyLoggedIn and a short-lived actionToken for /terminate-session.
    """
    result = await manager.login(data.username, data.password, force=data.force)

    if result.outcome == "rejected":
        # Same answer for unknown user, wrong password and disabled account
        raise HTTPException(status_code=401, detail=ERROR_CODES["INVALID_CREDENTIALS"])

    if result.outcome == "conflict":
        return {
            "status": "OK",
            "alreadyLoggedIn": True,
            "message": ERROR_CODES["SESSION_CONFLICT"],
            "actionToken": result.action_token
        }

    return {
        "status": "Success",
        "message": "Login successful.",
        "token": result.token,
        "planDetails": result.plan_details
    }


@client_router.post("/terminate-session")
async def terminate_session(data: TerminateSessionRequest, manager: SessionManager = Depends(get_session_manager)):
    """Evict the other device's session using the action token from a conflicted login"""
    if not await manager.terminate_session(data.action_token):
        raise HTTPException(status_code=401, detail="Invalid or expired action token.")
    return {"status": "Success", "message": "Previous session terminated. Please log in again."}


@client_router.post("/logout")
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    manager: SessionManager = Depends(get_session_manager)
):
    """Idempotent; expired tokens are accepted"""
    if credentials:
        await manager.logout(credentials.credentials)
    return {"status": "Success", "message": "Logged out."}


@client_router.post("/activity")
async def heartbeat(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    manager: SessionManager = Depends(get_session_manager)
):
    if not credentials:
        raise HTTPException(status_code=401, detail=ERROR_CODES["AUTH_REQUIRED"])

    seen_at = await manager.heartbeat(credentials.credentials)
    if seen_at is None:
        raise HTTPException(status_code=401, detail="Session is no longer active.")
    return {"status": "Success", "lastActivityAt": seen_at.isoformat()}


@client_router.get("/profile")
async def get_profile(client: dict = Depends(get_current_client)):
    profile = build_plan_details(client)
    profile.update({
        "id": client["id"],
        "username": client.get("username"),
        "email": client.get("email"),
        "mobile": client.get("mobile"),
        "businessName": client.get("businessName"),
        "bulkAccessCode": client.get("bulkAccessCode")
    })
    return {"status": "Success", "profile": profile}
