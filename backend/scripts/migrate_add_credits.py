"""
Migration Script: Credit Fields on Legacy Client Documents
==========================================================

Clients created before credit accounting existed have no initialCredits /
remainingCredits. This script derives both from the client's planName and
adds activeSessionId = null where it is missing.

Fields that are already present are never overwritten, so the script is safe
to run more than once.

Usage:
    python -m scripts.migrate_add_credits
"""

import asyncio
import logging
from motor.motor_asyncio import AsyncIOMotorClient
import os
from pathlib import Path
from dotenv import load_dotenv

from credit_wallet.plan_resolver import credits_for_plan

# Load environment
ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_credit_updates(client: dict) -> dict:
    """Fields to $set on one client document; empty when nothing is missing."""
    updates = {}

    initial = client.get("initialCredits")
    if initial is None:
        initial = credits_for_plan(client.get("planName"))
        updates["initialCredits"] = initial

    if client.get("remainingCredits") is None:
        updates["remainingCredits"] = initial

    if "activeSessionId" not in client:
        updates["activeSessionId"] = None

    return updates


async def migrate_client_credits(db):
    """Backfill credit fields on every client that lacks them."""
    logger.info("Starting client credit migration...")

    processed = 0
    updated = 0
    errors = 0

    cursor = db.clients.find({}, {"passwordHash": 0, "password": 0})

    async for client in cursor:
        processed += 1
        updates = build_credit_updates(client)
        if not updates:
            continue

        try:
            result = await db.clients.update_one({"_id": client["_id"]}, {"$set": updates})
            if result.matched_count:
                updated += 1
                logger.info(f"Client {client.get('username')}: set {sorted(updates)}")
        except Exception as e:
            errors += 1
            logger.error(f"Error migrating client {client.get('username')}: {e}")

    logger.info(f"Credit migration complete: {processed} processed, {updated} updated, {errors} errors")
    return {"processed": processed, "updated": updated, "errors": errors}


async def run_migration():
    """Run the migration against MONGO_URL / DB_NAME."""
    mongo_url = os.environ.get('MONGO_URL')
    db_name = os.environ.get('DB_NAME')

    if not mongo_url or not db_name:
        logger.error("MONGO_URL and DB_NAME environment variables required")
        return

    client = AsyncIOMotorClient(mongo_url)
    db = client[db_name]

    try:
        await migrate_client_credits(db)
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(run_migration())
