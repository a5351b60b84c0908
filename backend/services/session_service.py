"""
Session Service for Smart Locator
Enforces at most one live login session per client.

States per client: NoSession (activeSessionId = null) -> Active(sessionId) -> NoSession.
All transitions are single-document MongoDB updates; the compare-and-set paths
(forced login, logout) carry the expected sessionId in the update filter.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Literal

import jwt
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from utils.auth import (
    hash_password,
    verify_password,
    create_session_token,
    create_action_token,
    decode_session_token,
    decode_action_token,
)
from utils.errors import StoreUnavailableError
from utils.settings import AuthSettings

logger = logging.getLogger(__name__)

CLIENT_PROJECTION = {"_id": 0, "passwordHash": 0, "password": 0}
# Checked against when the username is unknown so every failed login pays for bcrypt
DUMMY_PASSWORD_HASH = hash_password(uuid.uuid4().hex)


@dataclass
class LoginResult:
    outcome: Literal["authenticated", "conflict", "rejected"]
    token: Optional[str] = None
    action_token: Optional[str] = None
    client_id: Optional[str] = None
    reason: Optional[Literal["invalid_credentials", "account_disabled"]] = None
    plan_details: Dict[str, Any] = field(default_factory=dict)


def build_plan_details(client: Dict[str, Any]) -> Dict[str, Any]:
    """Session summary returned to the dashboard."""
    validity_end = client.get("validityEnd")
    if isinstance(validity_end, datetime):
        validity_end = validity_end.isoformat()
    return {
        "planName": client.get("planName"),
        "clientName": client.get("clientName") or client.get("username"),
        "initialCredits": client.get("initialCredits"),
        "remainingCredits": client.get("remainingCredits"),
        "validityEnd": validity_end,
        "isActive": client.get("isActive", True)
    }


class SessionManager:
    """Single-active-session login, logout and eviction."""

    def __init__(self, db, settings: AuthSettings):
        self.db = db
        self.settings = settings

    async def login(self, username: str, password: str, force: bool = False) -> LoginResult:
        """
        Authenticate and establish the single session of record.

        A live session with force=False yields a conflict carrying a short-lived
        action token; with force=True the observed session is cleared (only if
        it is still the one we saw) and replaced.
        """
        try:
            client = await self.db.clients.find_one({"username": username}, {"_id": 0})
        except PyMongoError as e:
            raise StoreUnavailableError("login lookup", str(e)) from e

        if not client:
            verify_password(password, DUMMY_PASSWORD_HASH)
            return LoginResult(outcome="rejected", reason="invalid_credentials")

        password_hash = client.get("passwordHash") or client.get("password")
        if not password_hash:
            logger.error(f"Missing password hash for client {username}")
            verify_password(password, DUMMY_PASSWORD_HASH)
            return LoginResult(outcome="rejected", reason="invalid_credentials")

        if not verify_password(password, password_hash):
            return LoginResult(outcome="rejected", reason="invalid_credentials")

        if client.get("isActive") is False:
            logger.info(f"Login refused for disabled client {username}")
            return LoginResult(outcome="rejected", reason="account_disabled")

        client_id = client["id"]
        existing_session_id = client.get("activeSessionId")

        if existing_session_id and not force:
            return LoginResult(
                outcome="conflict",
                client_id=client_id,
                action_token=create_action_token(client_id, self.settings)
            )

        now = datetime.now(timezone.utc)
        try:
            if existing_session_id:
                cleared = await self.db.clients.update_one(
                    {"id": client_id, "activeSessionId": existing_session_id},
                    {"$set": {"activeSessionId": None}}
                )
                if cleared.modified_count == 0:
                    logger.info(f"Session for client {client_id} changed before forced clear")
                else:
                    logger.info(f"Forced login evicted previous session for client {client_id}")

            session_id = str(uuid.uuid4())
            updated = await self.db.clients.find_one_and_update(
                {"id": client_id},
                {"$set": {"activeSessionId": session_id, "lastActivityAt": now}},
                projection=CLIENT_PROJECTION,
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise StoreUnavailableError("session creation", str(e)) from e

        if not updated:
            # Deleted between lookup and session creation
            return LoginResult(outcome="rejected", reason="invalid_credentials")

        logger.info(f"Client {username} logged in")
        return LoginResult(
            outcome="authenticated",
            client_id=client_id,
            token=create_session_token(client_id, session_id, self.settings),
            plan_details=build_plan_details(updated)
        )

    async def terminate_session(self, action_token: str) -> bool:
        """
        Clear the live session of the client bound to a valid action token.

        Unconditional: the action token itself is the authorization to evict.
        """
        try:
            payload = decode_action_token(action_token, self.settings)
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected action token: {e}")
            return False

        client_id = payload["clientId"]
        try:
            result = await self.db.clients.update_one(
                {"id": client_id},
                {"$set": {"activeSessionId": None, "lastActivityAt": datetime.now(timezone.utc)}}
            )
        except PyMongoError as e:
            raise StoreUnavailableError("session termination", str(e)) from e

        if result.matched_count == 0:
            logger.warning(f"Action token for unknown client {client_id}")
            return False

        logger.info(f"Previous session terminated for client {client_id}")
        return True

    async def logout(self, session_token: str) -> bool:
        """
        Clear the session only if it is still the one named by the token.

        Expired tokens are accepted. Always succeeds from the caller's point of
        view; returns whether a live session was actually cleared.
        """
        try:
            payload = decode_session_token(session_token, self.settings, allow_expired=True)
        except jwt.InvalidTokenError:
            return False

        try:
            result = await self.db.clients.update_one(
                {"id": payload["clientId"], "activeSessionId": payload["sessionId"]},
                {"$set": {"activeSessionId": None, "lastActivityAt": datetime.now(timezone.utc)}}
            )
        except PyMongoError as e:
            raise StoreUnavailableError("logout", str(e)) from e

        if result.modified_count == 0:
            logger.info(f"Logout for client {payload['clientId']} matched no live session")
            return False
        return True

    async def validate_session(self, session_token: str) -> Optional[Dict[str, Any]]:
        """
        Check signature, expiry and that the token's session is the live one.

        Returns the client document (with "sessionId" attached) or None.
        """
        try:
            payload = decode_session_token(session_token, self.settings)
        except jwt.InvalidTokenError:
            return None

        try:
            client = await self.db.clients.find_one({"id": payload["clientId"]}, CLIENT_PROJECTION)
        except PyMongoError as e:
            raise StoreUnavailableError("session validation", str(e)) from e

        if not client or client.get("isActive") is False:
            return None
        if client.get("activeSessionId") != payload["sessionId"]:
            return None

        client["sessionId"] = payload["sessionId"]
        return client

    async def heartbeat(self, session_token: str) -> Optional[datetime]:
        """Record activity for a live session; None means the client must log out."""
        client = await self.validate_session(session_token)
        if not client:
            return None

        now = datetime.now(timezone.utc)
        try:
            await self.db.clients.update_one({"id": client["id"]}, {"$set": {"lastActivityAt": now}})
        except PyMongoError as e:
            raise StoreUnavailableError("heartbeat", str(e)) from e
        return now

    async def force_logout_by_admin(self, client_id: str) -> bool:
        """Clear whatever session the client holds. Returns False if the client does not exist."""
        try:
            result = await self.db.clients.update_one(
                {"id": client_id},
                {"$set": {"activeSessionId": None, "lastActivityAt": datetime.now(timezone.utc)}}
            )
        except PyMongoError as e:
            raise StoreUnavailableError("admin force logout", str(e)) from e

        if result.matched_count:
            logger.info(f"Admin forced logout for client {client_id}")
        return result.matched_count > 0
