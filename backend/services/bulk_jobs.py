"""
Bulk Verification Jobs for Smart Locator
CSV upload -> background verification -> semicolon-delimited result CSV

Job lifecycle: Queued -> In Progress -> Completed | Cancelled | Failed

Every row goes through the same VerificationGuard protocol as the single
endpoint (reserve one credit, verify, refund on failure), so a job can never
drive a balance below zero. Cancellation is cooperative and checked before
each row.
"""
import asyncio
import csv
import io
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from uuid import uuid4

from pymongo.errors import PyMongoError

from credit_wallet.config import BULK_LIMITS, ERROR_CODES
from credit_wallet.guard import VerificationGuard
from credit_wallet.plan_resolver import is_unlimited
from services.address_verifier import AddressVerifier
from utils.errors import BulkJobRejectedError, ExternalServiceError, StoreUnavailableError

logger = logging.getLogger(__name__)

# ==================== JOB STATUS ====================
STATUS_QUEUED = "Queued"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"
STATUS_CANCELLED = "Cancelled"
STATUS_FAILED = "Failed"
ACTIVE_STATUSES = [STATUS_QUEUED, STATUS_IN_PROGRESS]

# Guard refusals that end billing for the rest of a job
REFUSAL_REMARKS = {
    "QuotaExceeded": ERROR_CODES["QUOTA_EXCEEDED"],
    "AccountDisabled": ERROR_CODES["ACCOUNT_DISABLED"],
}

# ==================== CSV LAYOUT ====================
INPUT_COLUMNS = ("ORDER ID", "CUSTOMER NAME", "CUSTOMER RAW ADDRESS")
OUTPUT_HEADER = [
    "ORDER ID", "CUSTOMER NAME", "CUSTOMER RAW ADDRESS", "CLEAN NAME", "CLEAN ADDRESS LINE 1",
    "LANDMARK", "STATE", "DISTRICT", "PIN", "REMARKS", "QUALITY"
]
OUTPUT_DELIMITER = ";"
# Characters allowed in the download filename header
UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]")

JOB_LIST_PROJECTION = {"_id": 0, "outputData": 0}

# Background tasks by job id; holding the reference keeps the task alive
_job_tasks: Dict[str, asyncio.Task] = {}


def parse_csv(text: str) -> List[Dict[str, str]]:
    """
    Read the upload. Header names are matched after trimming; rows missing any
    of the three required columns are dropped. Returns [] if a column is absent.
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    try:
        header = [h.strip() for h in next(reader)]
    except StopIteration:
        return []

    if any(col not in header for col in INPUT_COLUMNS):
        return []
    indexes = {col: header.index(col) for col in INPUT_COLUMNS}
    width = max(indexes.values())

    rows = []
    for cells in reader:
        if not any(c.strip() for c in cells) or len(cells) <= width:
            continue
        rows.append({col: cells[i].strip() for col, i in indexes.items()})
    return rows


def create_csv(rows: List[Dict[str, Any]]) -> str:
    """Result file: semicolon-delimited, every cell quoted."""
    out = io.StringIO()
    writer = csv.writer(out, delimiter=OUTPUT_DELIMITER, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(OUTPUT_HEADER)
    for r in rows:
        writer.writerow([
            r.get("ORDER ID") or "",
            r.get("CUSTOMER NAME") or "",
            r.get("CUSTOMER RAW ADDRESS") or "",
            r.get("customerCleanName") or "",
            r.get("addressLine1") or "",
            r.get("landmark") or "",
            r.get("state") or "",
            r.get("district") or "",
            r.get("pin") or "",
            r.get("remarks") or r.get("message") or "",
            r.get("addressQuality") or "",
        ])
    return out.getvalue()


def _row_error(customer_name: str, remarks: str, status: str = "Error") -> Dict[str, Any]:
    return {
        "status": status,
        "remarks": remarks,
        "addressQuality": "Very Bad",
        "customerCleanName": customer_name,
        "addressLine1": "",
        "landmark": "",
        "state": "",
        "district": "",
        "pin": "",
    }


class BulkJobService:
    """Submission, background processing, listing, cancellation and download of bulk jobs"""

    def __init__(self, db, verifier: AddressVerifier, guard: Optional[VerificationGuard] = None):
        self.db = db
        self.verifier = verifier
        self.guard = guard or VerificationGuard(db)

    async def submit(self, client: Dict[str, Any], filename: str, csv_data: str, start: bool = True) -> Dict[str, Any]:
        """
        Validate and queue a job, then start it in the background.

        Raises:
            BulkJobRejectedError: active job limit (429), insufficient credits or empty file (400)
        """
        client_id = client["id"]
        max_active = BULK_LIMITS["max_active_jobs"]

        try:
            active = await self.db.bulkJobs.count_documents(
                {"clientId": client_id, "status": {"$in": ACTIVE_STATUSES}}
            )
        except PyMongoError as e:
            raise StoreUnavailableError("bulk job count", str(e)) from e

        if active >= max_active:
            raise BulkJobRejectedError(
                f"Maximum {max_active} job is already in progress. Please wait for completion.",
                status_code=429
            )

        rows = parse_csv(csv_data)
        if not rows:
            raise BulkJobRejectedError("No valid rows found in CSV.")

        balance = await self.guard.ledger.get_balance(client_id)
        remaining = balance.remaining_credits
        if not is_unlimited(remaining) and remaining < len(rows):
            raise BulkJobRejectedError(
                f"Insufficient Credits. You have {remaining} credits but require {len(rows)}."
            )

        job = {
            "id": str(uuid4()),
            "clientId": client_id,
            "filename": filename,
            "totalRows": len(rows),
            "processedCount": 0,
            "successCount": 0,
            "status": STATUS_QUEUED,
            "submittedAt": datetime.now(timezone.utc),
            "startTime": None,
            "completedTime": None,
            "outputData": None,
            "error": None
        }
        try:
            await self.db.bulkJobs.insert_one(job)
        except PyMongoError as e:
            raise StoreUnavailableError("bulk job create", str(e)) from e
        job.pop("_id", None)

        logger.info(f"Bulk job {job['id']} queued for client {client_id} with {len(rows)} rows")

        if start:
            _job_tasks[job["id"]] = asyncio.create_task(self.run_job(job["id"], client_id, rows))
        return job

    async def run_job(self, job_id: str, client_id: str, rows: List[Dict[str, str]]):
        """Background entry point; any uncaught error marks the job Failed."""
        try:
            await self.process_job(job_id, client_id, rows)
        except Exception as e:
            logger.error(f"Bulk job {job_id} failed: {e}", exc_info=True)
            try:
                await self.db.bulkJobs.update_one(
                    {"id": job_id},
                    {"$set": {"status": STATUS_FAILED, "error": "Internal processing error.",
                              "completedTime": datetime.now(timezone.utc)}}
                )
            except PyMongoError as db_err:
                logger.error(f"Could not mark bulk job {job_id} as failed: {db_err}")
        finally:
            _job_tasks.pop(job_id, None)

    async def _is_cancelled(self, job_id: str) -> bool:
        job = await self.db.bulkJobs.find_one({"id": job_id}, {"_id": 0, "status": 1})
        return not job or job.get("status") == STATUS_CANCELLED

    async def process_job(self, job_id: str, client_id: str, rows: List[Dict[str, str]]):
        started = await self.db.bulkJobs.update_one(
            {"id": job_id, "status": STATUS_QUEUED},
            {"$set": {"status": STATUS_IN_PROGRESS, "startTime": datetime.now(timezone.utc), "processedCount": 0}}
        )
        if started.matched_count == 0:
            logger.info(f"Bulk job {job_id} was cancelled before it started")
            return

        progress_every = BULK_LIMITS["progress_every_rows"]
        output_rows = []
        successes = 0
        # Set once the guard refuses a row; every later row carries this remark
        stop_remark = None

        for i, row in enumerate(rows):
            if await self._is_cancelled(job_id):
                logger.info(f"Bulk job {job_id} cancelled after {i} rows")
                return

            address = row.get("CUSTOMER RAW ADDRESS") or ""
            name = row.get("CUSTOMER NAME") or ""

            if stop_remark:
                result = _row_error(name, stop_remark)
            elif not address.strip():
                result = _row_error(name, "Missing raw address in CSV row.", status="Skipped")
            else:
                result = self.verifier.precheck(address, name)
                if result is None:
                    result = await self._verify_row(client_id, address, name)
                    refusal = REFUSAL_REMARKS.get(result.get("status"))
                    if refusal:
                        logger.warning(f"Bulk job {job_id} stopped at row {i + 1}: {result['status']}")
                        stop_remark = "Not processed: " + refusal
                        result = _row_error(name, stop_remark)
                    elif result.get("status") == "Success":
                        successes += 1

            result["ORDER ID"] = row.get("ORDER ID")
            result["CUSTOMER NAME"] = name
            result["CUSTOMER RAW ADDRESS"] = address
            output_rows.append(result)

            if (i + 1) % progress_every == 0 or i == len(rows) - 1:
                await self.db.bulkJobs.update_one(
                    {"id": job_id},
                    {"$set": {"processedCount": i + 1, "successCount": successes}}
                )

        finished = await self.db.bulkJobs.update_one(
            {"id": job_id, "status": STATUS_IN_PROGRESS},
            {"$set": {
                "status": STATUS_COMPLETED,
                "completedTime": datetime.now(timezone.utc),
                "outputData": create_csv(output_rows),
                "processedCount": len(rows),
                "successCount": successes
            }}
        )
        if finished.matched_count == 0:
            logger.info(f"Bulk job {job_id} ended as cancelled")
        else:
            logger.info(f"Bulk job {job_id} completed: {successes}/{len(rows)} verified")

    async def _verify_row(self, client_id: str, address: str, name: str) -> Dict[str, Any]:
        try:
            outcome = await self.guard.run(client_id, lambda: self.verifier.verify(address, name))
        except ExternalServiceError as e:
            return _row_error(name, f"Error: {e.reason}")

        if outcome.status == "account_disabled":
            return {"status": "AccountDisabled"}
        if not outcome.succeeded:
            return {"status": "QuotaExceeded"}
        return dict(outcome.result)

    async def list_jobs(self, client_id: str) -> List[Dict[str, Any]]:
        try:
            cursor = self.db.bulkJobs.find({"clientId": client_id}, JOB_LIST_PROJECTION).sort("submittedAt", -1)
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreUnavailableError("list bulk jobs", str(e)) from e

    async def cancel_job(self, job_id: str, client_id: str) -> bool:
        """Cancel a queued or running job owned by client_id. False if none matched."""
        try:
            result = await self.db.bulkJobs.update_one(
                {"id": job_id, "clientId": client_id, "status": {"$in": ACTIVE_STATUSES}},
                {"$set": {"status": STATUS_CANCELLED, "cancelledAt": datetime.now(timezone.utc),
                          "remarks": "Cancelled by client."}}
            )
        except PyMongoError as e:
            raise StoreUnavailableError("cancel bulk job", str(e)) from e
        return result.matched_count > 0

    async def get_download(self, job_id: str, client_id: str) -> Optional[Dict[str, str]]:
        """Completed job output as {"filename", "content"}, or None."""
        try:
            job = await self.db.bulkJobs.find_one(
                {"id": job_id, "clientId": client_id, "status": STATUS_COMPLETED},
                {"_id": 0, "filename": 1, "outputData": 1}
            )
        except PyMongoError as e:
            raise StoreUnavailableError("bulk job download", str(e)) from e

        if not job or not job.get("outputData"):
            return None

        base = UNSAFE_FILENAME_CHARS.sub("_", (job.get("filename") or "results").replace(".csv", "")).strip() or "results"
        return {"filename": f"{base}_verified.csv", "content": job["outputData"]}


async def wait_for_job(job_id: str):
    """Await a running background job, if this process started it."""
    task = _job_tasks.get(job_id)
    if task:
        await task
