"""
GET /jobs/{job_id} polls job status; POST /jobs/{job_id}/cancel requests cancellation.
"""

from fastapi import APIRouter

from backend.models.schemas import JobStatusResponse
from sales_intel.db import get_job, request_job_cancel
from sales_intel.errors import NotFoundError

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _require_job(job_id: str) -> dict:
    job = get_job(job_id)
    if not job:
        raise NotFoundError("Job not found")
    return job


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job_status(job_id: str):
    job = _require_job(job_id)
    return JobStatusResponse(
        job_id=job["id"],
        type=job["type"],
        status=job["status"],
        created_at=job["created_at"],
        completed_at=job.get("completed_at"),
        progress=job.get("progress") or {},
        result=job.get("result"),
        error=job.get("error"),
        cancel_requested=job.get("cancel_requested", False),
    )


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
def cancel_job(job_id: str):
    """Pending jobs cancel immediately; running jobs stop at their next checkpoint."""
    if not request_job_cancel(job_id):
        raise NotFoundError("Job not found")
    return get_job_status(job_id)
