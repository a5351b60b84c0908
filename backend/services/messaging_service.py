"""
Messaging Service for Smart Locator
Admin <-> client inbox and the public support form

Inbox messages live in `messages`; the admin is addressed by the fixed id
"admin". Support form submissions live in `supportMessages` and are only
visible to the admin.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4

from pymongo.errors import PyMongoError

from credit_wallet.config import SYSTEM_SENDER_ID
from utils.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class MessagingService:
    """Inbox and support message storage"""

    def __init__(self, db):
        self.db = db

    # ==================== INBOX ====================

    async def send_message(
        self,
        sender_id: str,
        subject: str,
        body: str,
        recipient_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Store an inbox message. Clients can only write to the admin; the admin
        must name a recipient.
        """
        if sender_id != SYSTEM_SENDER_ID:
            recipient_id = SYSTEM_SENDER_ID
        elif not recipient_id:
            raise ValueError("recipientId is required for admin messages")

        message = {
            "id": str(uuid4()),
            "senderId": sender_id,
            "receiverId": recipient_id,
            "subject": subject,
            "body": body,
            "isRead": False,
            "timestamp": datetime.now(timezone.utc)
        }
        try:
            await self.db.messages.insert_one(message)
        except PyMongoError as e:
            raise StoreUnavailableError("send message", str(e)) from e

        message.pop("_id", None)
        return message

    async def send_system_message(self, recipient_id: str, subject: str, body: str) -> bool:
        """Admin notification to a client. Best-effort: failures are logged, never raised."""
        try:
            await self.send_message(SYSTEM_SENDER_ID, subject, body, recipient_id)
            return True
        except Exception as e:
            logger.error(f"Failed to deliver system message '{subject}' to {recipient_id}: {e}")
            return False

    async def list_inbox(self, user_id: str) -> Dict[str, Any]:
        """Messages sent or received by user_id, newest first, with the unread count of received ones."""
        try:
            cursor = self.db.messages.find(
                {"$or": [{"senderId": user_id}, {"receiverId": user_id}]},
                {"_id": 0}
            ).sort("timestamp", -1)
            messages = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreUnavailableError("list inbox", str(e)) from e

        unread = sum(1 for m in messages if m.get("receiverId") == user_id and not m.get("isRead"))
        return {"messages": messages, "unreadCount": unread}

    async def mark_read(self, message_id: str, user_id: str) -> bool:
        """Only the receiver may mark a message read. Returns False when nothing matched."""
        try:
            result = await self.db.messages.update_one(
                {"id": message_id, "receiverId": user_id},
                {"$set": {"isRead": True}}
            )
        except PyMongoError as e:
            raise StoreUnavailableError("mark message read", str(e)) from e
        return result.matched_count > 0

    # ==================== SUPPORT FORM ====================

    async def create_support_message(self, client_name: str, client_email: str, message_text: str) -> Dict[str, Any]:
        doc = {
            "id": str(uuid4()),
            "clientName": client_name,
            "clientEmail": client_email,
            "messageText": message_text,
            "receivedAt": datetime.now(timezone.utc),
            "isRead": False
        }
        try:
            await self.db.supportMessages.insert_one(doc)
        except PyMongoError as e:
            raise StoreUnavailableError("create support message", str(e)) from e

        doc.pop("_id", None)
        logger.info(f"Support message received from {client_email}")
        return doc

    async def list_support_messages(self) -> Dict[str, Any]:
        try:
            cursor = self.db.supportMessages.find({}, {"_id": 0}).sort("receivedAt", -1)
            messages = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreUnavailableError("list support messages", str(e)) from e

        unread = sum(1 for m in messages if not m.get("isRead"))
        return {"messages": messages, "unreadCount": unread}

    async def mark_support_read(self, message_id: str) -> bool:
        try:
            result = await self.db.supportMessages.update_one({"id": message_id}, {"$set": {"isRead": True}})
        except PyMongoError as e:
            raise StoreUnavailableError("mark support message read", str(e)) from e
        return result.matched_count > 0

    async def delete_support_message(self, message_id: str) -> bool:
        try:
            result = await self.db.supportMessages.delete_one({"id": message_id})
        except PyMongoError as e:
            raise StoreUnavailableError("delete support message", str(e)) from e
        return result.deleted_count > 0
