"""
Bulk verification job routes
"""
from fastapi import APIRouter, Depends, HTTPException, Response
import logging

from database import get_db
from models.schemas import BulkJobSubmit, BulkJobList
from services.address_verifier import AddressVerifier, get_address_verifier
from services.bulk_jobs import BulkJobService
from utils.auth import get_current_client
from utils.errors import BulkJobRejectedError

logger = logging.getLogger(__name__)

bulk_jobs_router = APIRouter(prefix="/bulk-jobs", tags=["Bulk Jobs"])


def get_bulk_job_service(
    db=Depends(get_db),
    verifier: AddressVerifier = Depends(get_address_verifier)
) -> BulkJobService:
    return BulkJobService(db, verifier)


@bulk_jobs_router.get("", response_model=BulkJobList)
async def list_jobs(
    client: dict = Depends(get_current_client),
    service: BulkJobService = Depends(get_bulk_job_service)
):
    return {"status": "Success", "jobs": await service.list_jobs(client["id"])}


@bulk_jobs_router.post("")
async def submit_job(
    data: BulkJobSubmit,
    client: dict = Depends(get_current_client),
    service: BulkJobService = Depends(get_bulk_job_service)
):
    """Queue a CSV for background verification (one active job per client)"""
    try:
        job = await service.submit(client, data.filename, data.csvData)
    except BulkJobRejectedError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"status": "Success", "message": "Job submitted and started.", "jobId": job["id"]}


@bulk_jobs_router.put("/{job_id}/cancel")
async def cancel_job(
    job_id: str,
    client: dict = Depends(get_current_client),
    service: BulkJobService = Depends(get_bulk_job_service)
):
    if not await service.cancel_job(job_id, client["id"]):
        raise HTTPException(status_code=404, detail="Job not found, or it is already completed/failed.")
    return {"status": "Success", "message": "Job cancellation successful."}


@bulk_jobs_router.get("/{job_id}/download")
async def download_job(
    job_id: str,
    client: dict = Depends(get_current_client),
    service: BulkJobService = Depends(get_bulk_job_service)
):
    output = await service.get_download(job_id, client["id"])
    if not output:
        raise HTTPException(status_code=404, detail="Job not found or not completed.")

    return Response(
        content=output["content"],
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{output["filename"]}"'}
    )
