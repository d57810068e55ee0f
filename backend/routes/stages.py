"""
Per-lead stage pipeline: state, the three stage runs and full analysis.
"""

from fastapi import APIRouter

from backend.models.schemas import FullAnalysisRequest, JobSubmitResponse, StageRunResponse, StagesResponse
from sales_intel import db
from sales_intel.stages import legacy_view, run_full_analysis, run_stage

router = APIRouter(prefix="/leads", tags=["stages"])


@router.get("/{lead_id}/stages", response_model=StagesResponse)
def get_stages(lead_id: str):
    lead = db.require_lead(lead_id)
    return StagesResponse(lead_id=lead_id, stages=legacy_view(lead))


def _run(lead_id: str, stage: str) -> StageRunResponse:
    payload = run_stage(lead_id, stage)
    return StageRunResponse(lead_id=lead_id, stage=stage, payload=payload)


@router.post("/{lead_id}/geo-enrichment", response_model=StageRunResponse)
def geo_enrichment(lead_id: str):
    return _run(lead_id, "geo")


@router.post("/{lead_id}/property-analysis", response_model=StageRunResponse)
def property_analysis(lead_id: str):
    return _run(lead_id, "property")


@router.post("/{lead_id}/service-mapping", response_model=StageRunResponse)
def service_mapping(lead_id: str):
    return _run(lead_id, "service")


@router.post("/{lead_id}/full-analysis")
def full_analysis(lead_id: str, body: FullAnalysisRequest = FullAnalysisRequest()):
    """Run all three stages. With background=true, queue a cancellable job instead."""
    db.require_lead(lead_id)
    if body.background:
        job_id = db.create_job("full_analysis", {"lead_id": lead_id})
        return JobSubmitResponse(job_id=job_id)
    return run_full_analysis(lead_id)
