"""
Outreach campaigns: sequence steps, enrolled leads, generated messages and
the background prepare job.
"""

from fastapi import APIRouter

from backend.models.schemas import (
    CampaignCreate,
    CampaignLeadsRequest,
    CampaignPrepareRequest,
    CampaignStepsRequest,
    GenerateMessagesRequest,
    JobSubmitResponse,
    MessageUpdate,
)
from sales_intel import campaigns, db

router = APIRouter(tags=["campaigns"])


@router.post("/campaigns")
def create_campaign(body: CampaignCreate):
    return campaigns.create_campaign(body.name, body.goal)


@router.get("/campaigns/{campaign_id}")
def get_campaign(campaign_id: str):
    return campaigns.require_campaign(campaign_id)


@router.post("/campaigns/{campaign_id}/steps")
def set_steps(campaign_id: str, body: CampaignStepsRequest):
    steps = campaigns.set_campaign_steps(campaign_id, [s.model_dump() for s in body.steps])
    return {"success": True, "steps": steps}


@router.post("/campaigns/{campaign_id}/leads")
def add_leads(campaign_id: str, body: CampaignLeadsRequest):
    return {"success": True, **campaigns.add_campaign_leads(campaign_id, body.lead_ids)}


@router.post("/campaigns/{campaign_id}/generate-messages")
def generate_messages(campaign_id: str, body: GenerateMessagesRequest = GenerateMessagesRequest()):
    counts = campaigns.generate_messages(campaign_id, overwrite=body.overwrite)
    return {"success": True, **counts}


@router.post("/campaigns/{campaign_id}/prepare", response_model=JobSubmitResponse)
def prepare(campaign_id: str, body: CampaignPrepareRequest = CampaignPrepareRequest()):
    """Queue bulk enrichment plus message generation; poll GET /jobs/{job_id}."""
    campaigns.require_campaign(campaign_id)
    job_id = db.create_job(
        "campaign_prepare", {"campaign_id": campaign_id, "enrich": body.enrich, "generate": body.generate}
    )
    return JobSubmitResponse(job_id=job_id)


@router.get("/campaigns/{campaign_id}/messages")
def list_messages(campaign_id: str):
    campaigns.require_campaign(campaign_id)
    return {"messages": db.list_generated_messages(campaign_id)}


@router.patch("/messages/{message_id}")
def update_message(message_id: str, body: MessageUpdate):
    return db.update_generated_message(message_id, body.model_dump(exclude_none=True))
