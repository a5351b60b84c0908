"""
Client Administration Service for Smart Locator
Admin-side account management: create, list, update, delete, credit adjustments

Credit mutations go through CreditLedger so they stay atomic with respect to
concurrent reservations. Every visible account change also drops a system
message into the client's inbox.
"""
import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Union
from uuid import uuid4

from pymongo.errors import DuplicateKeyError, PyMongoError

from credit_wallet.config import SYSTEM_MESSAGES, UNLIMITED
from credit_wallet.ledger_service import CreditLedger
from credit_wallet.plan_resolver import credits_for_plan, parse_credit_value, plan_display_name, is_unlimited
from services.messaging_service import MessagingService
from utils.auth import hash_password
from utils.errors import StoreUnavailableError, ClientNotFoundError, UsernameTakenError

logger = logging.getLogger(__name__)

PUBLIC_PROJECTION = {"_id": 0, "passwordHash": 0, "password": 0}

# Plain profile fields an admin may overwrite as-is
PROFILE_FIELDS = ("clientName", "mobile", "email", "businessName", "businessType")


def generate_bulk_access_code(length: int = 6) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _to_datetime(value: Union[datetime, str]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_credits(value) -> str:
    if is_unlimited(value):
        return UNLIMITED
    try:
        return f"{int(value):,}"
    except (TypeError, ValueError):
        return str(value)


class ClientAdminService:
    """Admin operations on client accounts"""

    def __init__(self, db):
        self.db = db
        self.ledger = CreditLedger(db)
        self.messaging = MessagingService(db)

    async def _get(self, client_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.db.clients.find_one({"id": client_id}, PUBLIC_PROJECTION)
        except PyMongoError as e:
            raise StoreUnavailableError("client lookup", str(e)) from e

    async def add_client(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a client account.

        Credits are derived from the plan name; the account starts active with
        no session and a random bulk access code.
        """
        username = data["username"]
        try:
            if await self.db.clients.find_one({"username": username}, {"_id": 1}):
                raise UsernameTakenError(username)
        except PyMongoError as e:
            raise StoreUnavailableError("username check", str(e)) from e

        credits = credits_for_plan(data["planName"])
        now = datetime.now(timezone.utc)
        client = {
            "id": str(uuid4()),
            "clientName": data.get("clientName"),
            "username": username,
            "passwordHash": hash_password(data["password"]),
            "mobile": data.get("mobile"),
            "email": data.get("email"),
            "businessName": data.get("businessName"),
            "businessType": data.get("businessType"),
            "planName": data["planName"],
            "validityEnd": _to_datetime(data["validity"]),
            "isActive": True,
            "bulkAccessCode": generate_bulk_access_code(),
            "initialCredits": credits,
            "remainingCredits": credits,
            "activeSessionId": None,
            "lastActivityAt": None,
            "createdAt": now
        }

        try:
            await self.db.clients.insert_one(client)
        except DuplicateKeyError:
            raise UsernameTakenError(username)
        except PyMongoError as e:
            raise StoreUnavailableError("create client", str(e)) from e

        logger.info(f"Created client {username} on plan {data['planName']} with {credits} credits")

        await self.messaging.send_system_message(
            client["id"],
            SYSTEM_MESSAGES["welcome"],
            f"Your account has been created.\n"
            f"Plan: {plan_display_name(client['planName'])}\n"
            f"Credits: {_format_credits(credits)}\n"
            f"Valid until: {client['validityEnd'].date().isoformat()}"
        )

        client.pop("_id", None)
        client.pop("passwordHash", None)
        return client

    async def list_clients(self) -> List[Dict[str, Any]]:
        try:
            cursor = self.db.clients.find({}, PUBLIC_PROJECTION).sort("createdAt", -1)
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreUnavailableError("list clients", str(e)) from e

    async def update_client(self, client_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply an admin edit.

        Recognized keys: the profile fields, password, validity, isActive,
        clearSession, planName and keepRemainingCredits. Anything else is ignored.
        A plan change resets both initial and remaining credits unless
        keepRemainingCredits is true, in which case only initialCredits changes.
        """
        existing = await self._get(client_id)
        if not existing:
            raise ClientNotFoundError(client_id)

        update_doc: Dict[str, Any] = {}
        for key in PROFILE_FIELDS:
            if fields.get(key) is not None:
                update_doc[key] = fields[key]

        if fields.get("password"):
            update_doc["passwordHash"] = hash_password(fields["password"])

        if fields.get("validity") is not None:
            update_doc["validityEnd"] = _to_datetime(fields["validity"])

        status_changed = False
        if fields.get("isActive") is not None:
            update_doc["isActive"] = bool(fields["isActive"])
            status_changed = update_doc["isActive"] != existing.get("isActive", True)
            if update_doc["isActive"] is False:
                # A disabled account keeps no live session
                update_doc["activeSessionId"] = None

        if fields.get("clearSession") is True:
            update_doc["activeSessionId"] = None

        plan_changed = False
        new_plan = fields.get("planName")
        if new_plan and new_plan != existing.get("planName"):
            plan_changed = True
            new_credits = credits_for_plan(new_plan)
            update_doc["planName"] = new_plan
            update_doc["initialCredits"] = new_credits
            if fields.get("keepRemainingCredits") is not True:
                update_doc["remainingCredits"] = new_credits

        if not update_doc:
            return existing

        try:
            result = await self.db.clients.update_one({"id": client_id}, {"$set": update_doc})
        except PyMongoError as e:
            raise StoreUnavailableError("update client", str(e)) from e

        if result.matched_count == 0:
            raise ClientNotFoundError(client_id)

        updated = await self._get(client_id)
        logger.info(f"Admin updated client {client_id}: {sorted(k for k in update_doc if k != 'passwordHash')}")

        if status_changed:
            if updated.get("isActive") is False:
                await self.messaging.send_system_message(
                    client_id,
                    SYSTEM_MESSAGES["account_disabled"],
                    "Your account has been disabled by the administrator. Contact support for details."
                )
            else:
                await self.messaging.send_system_message(
                    client_id,
                    SYSTEM_MESSAGES["account_enabled"],
                    "Your account has been re-enabled. You can log in again."
                )
        elif plan_changed:
            await self.messaging.send_system_message(
                client_id,
                SYSTEM_MESSAGES["plan_updated"],
                f"Your plan has been updated to {plan_display_name(updated.get('planName'))}.\n"
                f"New Credits: {_format_credits(updated.get('remainingCredits'))}"
            )

        return updated

    async def delete_client(self, client_id: str) -> bool:
        try:
            result = await self.db.clients.delete_one({"id": client_id})
        except PyMongoError as e:
            raise StoreUnavailableError("delete client", str(e)) from e

        if result.deleted_count:
            logger.info(f"Admin deleted client {client_id}")
        return result.deleted_count > 0

    async def adjust_credits(
        self,
        client_id: str,
        action: str,
        add_credits: Optional[int] = None,
        remaining_credits: Optional[Union[int, str]] = None
    ) -> Dict[str, Any]:
        """
        "add": atomic top-up (no-op on Unlimited balances).
        "set": absolute value or "Unlimited".

        Raises:
            ValueError: unknown action or invalid amount
            ClientNotFoundError
        """
        if action == "add":
            if add_credits is None:
                raise ValueError("Invalid addCredits")
            client = await self.ledger.admin_top_up(client_id, add_credits)
            await self.messaging.send_system_message(
                client_id,
                SYSTEM_MESSAGES["credits_added"],
                f"Your account was credited with {add_credits:,} new credits. "
                f"Your new remaining balance is {_format_credits(client.get('remainingCredits'))} credits."
            )
            return client

        if action == "set":
            value = parse_credit_value(remaining_credits)
            client = await self.ledger.admin_set(client_id, value)
            await self.messaging.send_system_message(
                client_id,
                SYSTEM_MESSAGES["credits_adjusted"],
                "Your remaining credit balance has been manually set by the administrator. "
                f"Your new balance is {_format_credits(client.get('remainingCredits'))} credits."
            )
            return client

        raise ValueError("Invalid action. Use add or set.")
