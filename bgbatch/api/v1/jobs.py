"""
Batch Job Endpoints

POST /upload            - stage a batch of images and run the processor on it
GET  /status/{job_id}   - poll a job's status
GET  /jobs/{job_id}     - full ledger record of a job
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from bgbatch.api.dependencies import get_job_service
from bgbatch.core.logging import get_logger
from bgbatch.modules.jobs.schemas import StatusResponse, UploadResponse
from bgbatch.modules.jobs.service import JobService
from bgbatch.modules.jobs.staging import IncomingFile

logger = get_logger(__name__)
router = APIRouter()


@router.post("/upload", response_model=UploadResponse)
async def upload_images(
    images: Optional[List[UploadFile]] = File(None),
    service: JobService = Depends(get_job_service)
):
    """
    Submit a batch of images for background removal.

    The request returns once the external processor has exited. The
    response carries the job id to poll and the stored file names in
    submission order.
    """
    uploads = images or []
    incoming = [IncomingFile(filename=upload.filename or "", stream=upload.file) for upload in uploads]
    try:
        return await service.submit(incoming)
    finally:
        for upload in uploads:
            await upload.close()


@router.get(
    "/status/{job_id}",
    response_model=StatusResponse,
    response_model_exclude_none=True
)
async def get_status(job_id: str, service: JobService = Depends(get_job_service)):
    """
    Get the status of a job.

    Always 200. The body's status is one of processing, completed (with
    files), failed (with error) or unknown.
    """
    return await service.get_status(job_id)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, service: JobService = Depends(get_job_service)):
    """Full ledger record of a job, including staged and result files."""
    job = await service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return job.to_response_dict()
