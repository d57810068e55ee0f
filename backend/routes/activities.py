"""
Lead activity log: calls, emails, meetings and notes with follow-ups.
"""

from fastapi import APIRouter

from backend.models.schemas import ActivityCreate, ActivityUpdate
from sales_intel import db

router = APIRouter(prefix="/leads", tags=["activities"])


@router.get("/{lead_id}/activities")
def list_activities(lead_id: str):
    db.require_lead(lead_id)
    return {"activities": db.list_activities(lead_id)}


@router.post("/{lead_id}/activities")
def create_activity(lead_id: str, body: ActivityCreate):
    activity = db.create_activity(
        lead_id,
        body.activity_type,
        body.content,
        body.created_by or "Sales Rep",
        follow_up_date=body.follow_up_date,
        follow_up_action=body.follow_up_action,
        follow_up_completed=body.follow_up_completed,
    )
    return {"success": True, "activity": activity}


@router.put("/{lead_id}/activities/{activity_id}")
def update_activity(lead_id: str, activity_id: str, body: ActivityUpdate):
    activity = db.update_activity(lead_id, activity_id, body.model_dump(exclude_none=True))
    return {"success": True, "activity": activity}


@router.delete("/{lead_id}/activities/{activity_id}")
def delete_activity(lead_id: str, activity_id: str):
    db.delete_activity(lead_id, activity_id)
    return {"success": True}
