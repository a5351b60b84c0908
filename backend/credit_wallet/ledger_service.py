"""
Credit Ledger Service

Core credit operations on the client document:
- Reservation (atomic conditional decrement, never below zero)
- Refund (best-effort increment after a failed billable call)
- Admin absolute set and atomic top-up
- Balance queries

CRITICAL: Every mutation is a single MongoDB round-trip with the balance
condition in the filter. A read-then-write in application code would let two
concurrent requests that both saw "1 remaining" spend the same credit.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from .config import UNLIMITED
from .models import ReserveResult, CreditBalance
from .plan_resolver import is_unlimited
from utils.errors import StoreUnavailableError, ClientNotFoundError

logger = logging.getLogger(__name__)

CREDIT_PROJECTION = {
    "_id": 0,
    "id": 1,
    "isActive": 1,
    "remainingCredits": 1,
    "initialCredits": 1,
    "planName": 1
}


class CreditLedger:
    """Per-client consumable credit balance, consistent under concurrent requests."""

    def __init__(self, db):
        self.db = db

    async def _find_client(self, client_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.db.clients.find_one({"id": client_id}, CREDIT_PROJECTION)
        except PyMongoError as e:
            raise StoreUnavailableError("credit lookup", str(e)) from e

    async def try_reserve(self, client_id: str) -> ReserveResult:
        """
        Reserve one credit for a billable call.

        Unlimited accounts are always reserved without touching the balance.
        Numeric accounts are decremented only if the stored value is > 0, and
        the post-decrement value is read back in the same atomic step.
        """
        client = await self._find_client(client_id)
        if not client:
            raise ClientNotFoundError(client_id)

        if client.get("isActive") is False:
            return ReserveResult(
                reserved=False,
                reason="account_disabled",
                remaining_credits=client.get("remainingCredits", 0)
            )

        now = datetime.now(timezone.utc)

        if is_unlimited(client.get("remainingCredits")):
            try:
                await self.db.clients.update_one(
                    {"id": client_id},
                    {"$set": {"lastActivityAt": now}}
                )
            except PyMongoError as e:
                # lastActivityAt is advisory; the reservation itself needs no write
                logger.warning(f"Could not touch lastActivityAt for {client_id}: {e}")
            return ReserveResult(reserved=True, unlimited=True, remaining_credits=UNLIMITED)

        try:
            updated = await self.db.clients.find_one_and_update(
                {"id": client_id, "isActive": {"$ne": False}, "remainingCredits": {"$gt": 0}},
                {"$inc": {"remainingCredits": -1}, "$set": {"lastActivityAt": now}},
                projection=CREDIT_PROJECTION,
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise StoreUnavailableError("credit reservation", str(e)) from e

        if updated:
            return ReserveResult(reserved=True, remaining_credits=updated.get("remainingCredits", 0))

        # Conditional update matched nothing: balance hit 0, or the document
        # changed between our read and the write.
        latest = await self._find_client(client_id)
        if not latest:
            raise ClientNotFoundError(client_id)
        if latest.get("isActive") is False:
            return ReserveResult(
                reserved=False,
                reason="account_disabled",
                remaining_credits=latest.get("remainingCredits", 0)
            )
        if is_unlimited(latest.get("remainingCredits")):
            return ReserveResult(reserved=True, unlimited=True, remaining_credits=UNLIMITED)

        logger.info(f"Credit reservation denied for client {client_id}: balance exhausted")
        return ReserveResult(
            reserved=False,
            reason="quota_exceeded",
            remaining_credits=latest.get("remainingCredits", 0)
        )

    async def refund(self, client_id: str) -> None:
        """
        Give back one credit after a reserved call failed.

        Best-effort: failures are logged and swallowed so they never replace
        the primary error returned to the user.
        """
        try:
            result = await self.db.clients.update_one(
                {"id": client_id, "remainingCredits": {"$ne": UNLIMITED}},
                {"$inc": {"remainingCredits": 1}}
            )
            if result.matched_count == 0:
                logger.warning(f"Refund skipped for client {client_id}: account missing or now unlimited")
            else:
                logger.info(f"Refunded 1 credit to client {client_id}")
        except Exception as e:
            logger.error(f"Refund failed for client {client_id}: {e}")

    async def admin_set(self, client_id: str, value: Union[int, str]) -> Dict[str, Any]:
        """Overwrite remainingCredits with an absolute value or the Unlimited sentinel."""
        if not is_unlimited(value) and (not isinstance(value, int) or isinstance(value, bool) or value < 0):
            raise ValueError("remainingCredits must be a non-negative integer or Unlimited")
        stored = UNLIMITED if is_unlimited(value) else value

        try:
            updated = await self.db.clients.find_one_and_update(
                {"id": client_id},
                {"$set": {"remainingCredits": stored}},
                projection={"_id": 0, "passwordHash": 0},
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise StoreUnavailableError("admin credit set", str(e)) from e

        if not updated:
            raise ClientNotFoundError(client_id)

        logger.info(f"Admin set remainingCredits={stored} for client {client_id}")
        return updated

    async def admin_top_up(self, client_id: str, amount: int) -> Dict[str, Any]:
        """
        Atomically add credits.

        No-op (returns the unchanged account) when the balance is Unlimited.
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValueError("Top-up amount must be a positive integer")

        try:
            updated = await self.db.clients.find_one_and_update(
                {"id": client_id, "remainingCredits": {"$ne": UNLIMITED}},
                {"$inc": {"remainingCredits": amount}},
                projection={"_id": 0, "passwordHash": 0},
                return_document=ReturnDocument.AFTER
            )
            if updated:
                logger.info(f"Admin topped up {amount} credits for client {client_id}")
                return updated

            unchanged = await self.db.clients.find_one({"id": client_id}, {"_id": 0, "passwordHash": 0})
        except PyMongoError as e:
            raise StoreUnavailableError("admin top-up", str(e)) from e

        if not unchanged:
            raise ClientNotFoundError(client_id)
        return unchanged

    async def get_balance(self, client_id: str) -> CreditBalance:
        """Authoritative re-read of a client's credits."""
        client = await self._find_client(client_id)
        if not client:
            raise ClientNotFoundError(client_id)

        remaining = client.get("remainingCredits")
        return CreditBalance(
            client_id=client_id,
            remaining_credits=UNLIMITED if is_unlimited(remaining) else (remaining or 0),
            initial_credits=client.get("initialCredits"),
            plan_name=client.get("planName")
        )
