"""
Pydantic schemas for the sales intelligence API.
"""

from typing import Optional, List, Any, Dict
from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ErrorBody(BaseModel):
    kind: str
    message: str
    detail: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorBody


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class SettingsUpdate(BaseModel):
    """Request body for POST /settings. Only provided fields are saved."""

    enrichment_api_key: Optional[str] = None
    ai_provider: Optional[str] = None
    ai_api_key: Optional[str] = None
    ai_model: Optional[str] = None
    google_maps_api_key: Optional[str] = None
    google_custom_search_id: Optional[str] = None
    perplexity_api_key: Optional[str] = None
    business_profile: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------

class LeadCreate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    company_name: str
    company_domain: Optional[str] = None
    company_website: Optional[str] = None
    company_street: Optional[str] = None
    company_city: Optional[str] = None
    company_state: Optional[str] = None
    company_postal_code: Optional[str] = None
    company_country: Optional[str] = None
    employee_count: Optional[int] = None
    estimated_value: Optional[Any] = None
    apollo_id: Optional[str] = None
    organization_id: Optional[str] = None
    qualification_level: Optional[str] = None
    status: Optional[str] = None


class LeadStatusUpdate(BaseModel):
    status: Optional[str] = None
    qualification_level: Optional[str] = None


class LeadBulkDelete(BaseModel):
    lead_ids: List[str]


class LeadListResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

class StageView(BaseModel):
    status: str  # pending | disabled | loading | complete
    state: str
    reason: Optional[str] = None
    label: str
    can_run: bool


class StagesResponse(BaseModel):
    lead_id: str
    stages: Dict[str, StageView]


class StageRunResponse(BaseModel):
    lead_id: str
    stage: str
    payload: Dict[str, Any]


class FullAnalysisRequest(BaseModel):
    background: bool = False


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------

class ActivityCreate(BaseModel):
    activity_type: str
    content: str
    created_by: Optional[str] = None
    follow_up_date: Optional[str] = None
    follow_up_action: Optional[str] = None
    follow_up_completed: bool = False


class ActivityUpdate(BaseModel):
    activity_type: Optional[str] = None
    content: Optional[str] = None
    follow_up_date: Optional[str] = None
    follow_up_action: Optional[str] = None
    follow_up_completed: Optional[bool] = None


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

class CampaignCreate(BaseModel):
    name: str
    goal: Optional[str] = None


class CampaignStep(BaseModel):
    delay_days: int = 0
    subject_template: Optional[str] = None
    body_template: Optional[str] = None


class CampaignStepsRequest(BaseModel):
    steps: List[CampaignStep]


class CampaignLeadsRequest(BaseModel):
    lead_ids: List[str]


class CampaignPrepareRequest(BaseModel):
    enrich: bool = True
    generate: bool = True


class GenerateMessagesRequest(BaseModel):
    overwrite: bool = False


class MessageUpdate(BaseModel):
    subject: Optional[str] = None
    body: Optional[str] = None
    status: Optional[str] = None


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

class JobSubmitResponse(BaseModel):
    job_id: str
    status: str = "pending"


class JobStatusResponse(BaseModel):
    job_id: str
    type: str
    status: str
    created_at: str
    completed_at: Optional[str] = None
    progress: Dict[str, Any] = {}
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    cancel_requested: bool = False
