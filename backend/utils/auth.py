"""
Authentication utilities

Three token kinds are signed with pre-shared secrets from AuthSettings:
- session tokens (clientId, sessionId, role=client), long-lived
- action tokens (clientId, purpose=terminate_session), short-lived and only
  accepted by the terminate-session flow
- admin tokens (id=admin, role=admin)
"""
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
import bcrypt
import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, Any

from database import get_db
from credit_wallet.config import ACTION_TOKEN_PURPOSE, ERROR_CODES
from utils.settings import AuthSettings, get_auth_settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def create_session_token(client_id: str, session_id: str, settings: AuthSettings) -> str:
    payload = {
        "clientId": client_id,
        "sessionId": session_id,
        "role": "client",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=settings.session_token_ttl)
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.algorithm)


def create_action_token(client_id: str, settings: AuthSettings) -> str:
    payload = {
        "clientId": client_id,
        "purpose": ACTION_TOKEN_PURPOSE,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=settings.action_token_ttl)
    }
    return jwt.encode(payload, settings.action_token_secret, algorithm=settings.algorithm)


def create_admin_token(username: str, settings: AuthSettings) -> str:
    payload = {
        "id": "admin",
        "username": username,
        "role": "admin",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=settings.admin_token_ttl)
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.algorithm)


def decode_session_token(token: str, settings: AuthSettings, allow_expired: bool = False) -> Dict[str, Any]:
    """
    Verify a client session token and return its claims.

    allow_expired keeps the signature check but skips expiry (used by logout).
    Raises jwt.InvalidTokenError on any failure.
    """
    payload = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.algorithm],
        options={"verify_exp": not allow_expired}
    )
    if payload.get("role") != "client" or not payload.get("clientId") or not payload.get("sessionId"):
        raise jwt.InvalidTokenError("Not a client session token")
    return payload


def decode_action_token(token: str, settings: AuthSettings) -> Dict[str, Any]:
    """Verify an action token (signature, expiry and purpose)."""
    payload = jwt.decode(token, settings.action_token_secret, algorithms=[settings.algorithm])
    if payload.get("purpose") != ACTION_TOKEN_PURPOSE or not payload.get("clientId"):
        raise jwt.InvalidTokenError("Not an action token")
    return payload


def decode_admin_token(token: str, settings: AuthSettings) -> Dict[str, Any]:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.algorithm])
    if payload.get("role") != "admin":
        raise jwt.InvalidTokenError("Not an admin token")
    return payload


def _unauthorized():
    return HTTPException(status_code=401, detail=ERROR_CODES["AUTH_REQUIRED"])


async def get_current_client(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
):
    """
    Verify the session token and that its session is still the live one.

    Returns the client document (no password hash) with the token's sessionId
    attached under "sessionId".
    """
    from services.session_service import SessionManager

    if not credentials:
        raise _unauthorized()

    manager = SessionManager(db, get_auth_settings())
    client = await manager.validate_session(credentials.credentials)
    if not client:
        raise _unauthorized()
    return client


async def get_admin_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Check the bearer token is an admin token"""
    if not credentials:
        raise _unauthorized()
    try:
        payload = decode_admin_token(credentials.credentials, get_auth_settings())
    except jwt.ExpiredSignatureError:
        raise _unauthorized()
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=403, detail="Admin access required")
    return payload


async def get_inbox_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db)
) -> str:
    """Resolve the inbox owner: "admin" for admin tokens, the client id for live client sessions."""
    if not credentials:
        raise _unauthorized()

    settings = get_auth_settings()
    try:
        decode_admin_token(credentials.credentials, settings)
        return "admin"
    except jwt.InvalidTokenError:
        pass

    client = await get_current_client(credentials, db)
    return client["id"]
