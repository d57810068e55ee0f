"""
GET /settings, POST /settings: workspace provider keys and business profile.
"""

import logging

from fastapi import APIRouter, Request

from backend.models.schemas import SettingsUpdate
from sales_intel.config import get_settings
from sales_intel.db import save_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
def read_settings(request: Request):
    """Effective settings with secrets masked."""
    settings = get_settings().masked()
    settings["workspace_id"] = getattr(request.state, "workspace_id", None)
    return settings


@router.post("")
def update_settings(body: SettingsUpdate, request: Request):
    values = body.model_dump(exclude_none=True)
    save_settings(values)
    logger.info("Saved settings for workspace %s: %s", getattr(request.state, "workspace_id", None),
                ", ".join(sorted(values)) or "none")
    return {"success": True, "saved": sorted(values)}
