"""
Lead CRUD, pipeline status updates and Apollo contact enrichment.
"""

from fastapi import APIRouter, Query

from backend.models.schemas import LeadBulkDelete, LeadCreate, LeadListResponse, LeadStatusUpdate
from sales_intel import db
from sales_intel.campaigns import enrich_lead
from sales_intel.config import get_settings
from sales_intel.errors import InvalidInputError, NotFoundError

router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("")
def create_lead(body: LeadCreate):
    fields = body.model_dump(exclude_none=True)
    _validate_status_fields(fields)
    return db.create_lead(fields)


@router.get("", response_model=LeadListResponse)
def list_leads(limit: int = Query(500, ge=1, le=5000)):
    items = db.list_leads(limit=limit)
    return LeadListResponse(items=items, total=len(items))


@router.get("/{lead_id}")
def get_lead(lead_id: str):
    return db.require_lead(lead_id)


@router.delete("/{lead_id}")
def delete_lead(lead_id: str):
    """Remove a lead with its activities, enrollments and generated messages."""
    if not db.delete_leads([lead_id]):
        raise NotFoundError(f"Lead {lead_id} not found")
    return {"success": True}


@router.post("/bulk-delete")
def bulk_delete(body: LeadBulkDelete):
    if not body.lead_ids:
        raise InvalidInputError("lead_ids must not be empty")
    return {"success": True, "deleted_count": db.delete_leads(body.lead_ids)}


def _validate_status_fields(fields: dict) -> None:
    status = fields.get("status")
    if status is not None and status not in db.LEAD_STATUSES:
        raise InvalidInputError(f"Invalid status. Must be one of: {', '.join(db.LEAD_STATUSES)}")
    level = fields.get("qualification_level")
    if level is not None and level not in db.QUALIFICATION_LEVELS:
        raise InvalidInputError(
            f"Invalid qualification_level. Must be one of: {', '.join(db.QUALIFICATION_LEVELS)}"
        )


@router.patch("/{lead_id}/status")
def update_lead_status(lead_id: str, body: LeadStatusUpdate):
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise InvalidInputError("Provide status or qualification_level")
    _validate_status_fields(fields)
    return db.update_lead(lead_id, fields)


@router.post("/{lead_id}/enrich")
def enrich(lead_id: str):
    """Reveal contact details through Apollo and merge them into the lead."""
    lead = db.require_lead(lead_id)
    return {"success": True, "lead": enrich_lead(lead, get_settings())}
