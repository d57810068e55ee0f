"""
Opportunity scores, recomputed on read from leads and their activities.
"""

from fastapi import APIRouter, Query

from sales_intel import db
from sales_intel.config import get_settings
from sales_intel.noise import noise_from_settings
from sales_intel.score import ScoreCache, get_scoring_summary, score_lead, score_leads

router = APIRouter(tags=["scores"])

_cache = ScoreCache()


@router.get("/scores")
def list_scores(limit: int = Query(500, ge=1, le=5000)):
    """All leads scored and sorted by opportunity score, with a pipeline summary."""
    settings = get_settings()
    noise = noise_from_settings(settings.score_jitter, settings.score_seed)
    scored = score_leads(db.list_leads(limit=limit), db.list_activities(), noise=noise, cache=_cache)
    scored.sort(key=lambda s: s.opportunity_score, reverse=True)
    return {"items": [s.to_dict() for s in scored], "summary": get_scoring_summary(scored)}


@router.get("/leads/{lead_id}/score")
def lead_score(lead_id: str):
    lead = db.require_lead(lead_id)
    settings = get_settings()
    noise = noise_from_settings(settings.score_jitter, settings.score_seed)
    return score_lead(lead, db.list_activities(lead_id), noise=noise).to_dict()
