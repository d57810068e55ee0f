"""
Opportunity Scoring Engine.

Scores every lead on three axes and blends them:

- Company fit (45%): property type and quality, AI service-mapping verdict,
  company size, enrichment completeness
- Engagement (30%): activity recency and volume, reachable channels, title
  seniority
- Timing (25%): lead age, enrichment freshness, qualification level,
  pipeline status

Win probability and an estimated annual deal value are derived from the
composite. Each numeric adjustment appends a reasoning string so the
breakdown explains the score.

Scoring is a pure function of (leads, activities, noise, now). Jitter comes
from an injected NoiseGenerator; the default NoNoise makes results
deterministic. ScoreCache memoizes per-lead results by fingerprint.
"""

import re
import json
import math
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .noise import NoiseGenerator, NoNoise

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

WEIGHT_FIT = 0.45
WEIGHT_ENGAGEMENT = 0.30
WEIGHT_TIMING = 0.25

BASE_FIT = 25
BASE_ENGAGEMENT = 20
BASE_TIMING = 30

FIT_JITTER = 7
ENGAGEMENT_JITTER = 6
TIMING_JITTER = 5
WIN_JITTER = 3

HIGH_VALUE_PROPERTIES = ("golf_course", "country_club", "resort", "hotel", "healthcare", "hospital")
MEDIUM_VALUE_PROPERTIES = ("educational", "university", "office", "retail", "shopping_center")

STATUS_MULTIPLIERS = {
    "new": 0.5,
    "contacted": 0.8,
    "qualified": 1.3,
    "proposal": 1.8,
    "won": 2.5,
    "lost": 0.05,
}
WIN_CAP_BEFORE_JITTER = 92
WIN_MIN = 5
WIN_MAX = 95

DEFAULT_ESTIMATED_VALUE = 15000
# (base, spread) drawn as base + uniform(0, spread)
VALUE_RANGES = {
    "high": (60000, 80000),
    "medium": (30000, 50000),
    "complete": (25000, 40000),
    "apollo": (15000, 25000),
    "default": (8000, 15000),
}
VALUE_ROUNDING = 500
_MONEY_RE = re.compile(r"\$?([\d,]+)")

RECENT_ACTIVITY_DAYS = 7


@dataclass
class ScoreComponent:
    score: float
    reasons: List[str] = field(default_factory=list)


@dataclass
class ScoredLead:
    """Lead plus derived scores. Not persisted; recomputed on demand."""

    lead: Dict[str, Any]
    opportunity_score: int
    company_fit_score: int
    engagement_score: int
    timing_score: int
    win_probability: int
    estimated_value: int
    score_breakdown: Dict[str, Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.lead,
            "opportunity_score": self.opportunity_score,
            "company_fit_score": self.company_fit_score,
            "engagement_score": self.engagement_score,
            "timing_score": self.timing_score,
            "win_probability": self.win_probability,
            "estimated_value": self.estimated_value,
            "score_breakdown": self.score_breakdown,
        }


# =============================================================================
# HELPERS
# =============================================================================

def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _clamp(x: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, x))


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _days_since(value: Any, now: datetime) -> Optional[float]:
    dt = _parse_ts(value)
    if dt is None:
        return None
    return (now - dt).total_seconds() / 86400.0


def _employee_count(lead: Dict[str, Any]) -> int:
    try:
        return int(lead.get("employee_count") or 0)
    except (TypeError, ValueError):
        return 0


def _property_type(lead: Dict[str, Any]) -> Optional[str]:
    geo = lead.get("geo_enrichment") or {}
    prop = lead.get("property_analysis") or {}
    value = geo.get("property_type") or prop.get("property_type")
    return str(value) if value else None


def _property_tier(property_type: Optional[str]) -> Optional[str]:
    lowered = (property_type or "").lower()
    if not lowered:
        return None
    if any(p in lowered for p in HIGH_VALUE_PROPERTIES):
        return "high"
    if any(p in lowered for p in MEDIUM_VALUE_PROPERTIES):
        return "medium"
    return "other"


# =============================================================================
# SUB-SCORES
# =============================================================================

def score_company_fit(lead: Dict[str, Any], noise: NoiseGenerator) -> ScoreComponent:
    score = float(BASE_FIT)
    reasons: List[str] = []

    property_type = _property_type(lead)
    tier = _property_tier(property_type)
    if tier == "high":
        score += 25
        reasons.append(f"High-value property type: {property_type}")
    elif tier == "medium":
        score += 15
        reasons.append(f"Commercial property: {property_type}")
    elif tier == "other":
        score += 8
        reasons.append(f"Property identified: {property_type}")

    quality = str((lead.get("property_analysis") or {}).get("property_quality") or "").lower()
    if quality:
        if "excellent" in quality or "premium" in quality or "high-end" in quality:
            score += 15
            reasons.append("Premium property quality")
        elif "good" in quality or "well-maintained" in quality:
            score += 8
            reasons.append("Good property condition")
        elif "average" in quality or "moderate" in quality:
            score += 4
            reasons.append("Average property condition")

    mapping = lead.get("service_mapping")
    if isinstance(mapping, dict):
        verdict = str((mapping.get("context") or {}).get("opportunity_score") or "").lower()
        if verdict == "high":
            score += 20
            reasons.append("AI rated as HIGH opportunity")
        elif verdict == "medium":
            score += 10
            reasons.append("AI rated as MEDIUM opportunity")
        elif verdict == "low":
            score += 3
            reasons.append("AI rated as LOW opportunity")

        fit_text = mapping.get("service_fit_analysis")
        if isinstance(fit_text, str):
            if len(fit_text) > 500:
                score += 10
                reasons.append("Comprehensive service analysis")
            elif len(fit_text) > 200:
                score += 5
                reasons.append("Detailed service mapping")

    employees = _employee_count(lead)
    if employees > 500:
        score += 15
        reasons.append(f"Enterprise size: {employees:,} employees")
    elif employees > 100:
        score += 10
        reasons.append(f"Mid-market size: {employees:,} employees")
    elif employees > 20:
        score += 5
        reasons.append(f"SMB size: {employees} employees")

    if lead.get("enrichment_status") == "complete":
        score += 8
        reasons.append("Full enrichment completed")
    if lead.get("apollo_id"):
        score += 5
        reasons.append("Verified contact data")

    score += noise.uniform(-FIT_JITTER, FIT_JITTER)
    return ScoreComponent(_clamp(score), reasons)


def score_engagement(
    lead: Dict[str, Any], lead_activities: List[Dict[str, Any]], noise: NoiseGenerator, now: datetime
) -> ScoreComponent:
    score = float(BASE_ENGAGEMENT)
    reasons: List[str] = []

    recent = 0
    for activity in lead_activities:
        days = _days_since(activity.get("created_at"), now)
        if days is not None and days <= RECENT_ACTIVITY_DAYS:
            recent += 1
    if recent >= 3:
        score += 25
        reasons.append(f"{recent} recent activities - very engaged")
    elif recent > 0:
        score += 12
        reasons.append(f"{recent} recent activities")

    total = len(lead_activities)
    if total > 10:
        score += 25
        reasons.append("Extensive activity history")
    elif total > 5:
        score += 15
        reasons.append("Good activity history")
    elif total > 2:
        score += 8
        reasons.append("Some activity")

    channels = 0
    if lead.get("email"):
        score += 10
        channels += 1
    if lead.get("phone"):
        score += 8
        channels += 1
    if lead.get("linkedin_url"):
        score += 5
        channels += 1
    if channels:
        reasons.append(f"{channels} contact methods available")

    title = str(lead.get("title") or "").lower()
    if any(k in title for k in ("ceo", "president", "owner", "founder")):
        score += 15
        reasons.append("C-level decision maker")
    elif any(k in title for k in ("director", "vp", "vice president", "head of")):
        score += 10
        reasons.append("Senior decision maker")
    elif any(k in title for k in ("manager", "coordinator")):
        score += 5
        reasons.append("Manager level")

    score += noise.uniform(-ENGAGEMENT_JITTER, ENGAGEMENT_JITTER)
    return ScoreComponent(_clamp(score), reasons)


def score_timing(lead: Dict[str, Any], noise: NoiseGenerator, now: datetime) -> ScoreComponent:
    score = float(BASE_TIMING)
    reasons: List[str] = []

    age = _days_since(lead.get("created_at"), now)
    if age is not None:
        if age <= 3:
            score += 30
            reasons.append("Brand new lead")
        elif age <= 7:
            score += 20
            reasons.append("Very recent lead")
        elif age <= 14:
            score += 12
            reasons.append("Recent lead")
        elif age <= 30:
            score += 8
            reasons.append("This month")
        elif age <= 60:
            score += 4
            reasons.append("Last 2 months")
        else:
            score -= 5
            reasons.append("Older lead - may be stale")

    enriched = _days_since(lead.get("enriched_at"), now)
    if enriched is not None:
        if enriched <= 3:
            score += 15
            reasons.append("Just enriched")
        elif enriched <= 7:
            score += 10
            reasons.append("Recently enriched")

    level = lead.get("qualification_level")
    if level == "hot":
        score += 20
        reasons.append("HOT lead - immediate action")
    elif level == "warm":
        score += 10
        reasons.append("Warm lead")
    else:
        score -= 5
        reasons.append("Cold - needs warming")

    status = lead.get("status")
    if status in ("qualified", "proposal"):
        score += 15
        reasons.append("Advanced in pipeline")
    elif status == "contacted":
        score += 8
        reasons.append("Initial contact made")

    score += noise.uniform(-TIMING_JITTER, TIMING_JITTER)
    return ScoreComponent(_clamp(score), reasons)


# =============================================================================
# DERIVED VALUES
# =============================================================================

def win_probability(composite: int, status: Optional[str], noise: NoiseGenerator) -> int:
    multiplier = STATUS_MULTIPLIERS.get(status or "", 1.0)
    value = min(WIN_CAP_BEFORE_JITTER, round_half_up(composite * 0.4 * multiplier))
    value += round_half_up(noise.uniform(-WIN_JITTER, WIN_JITTER))
    return int(_clamp(value, WIN_MIN, WIN_MAX))


def estimate_value(lead: Dict[str, Any], noise: NoiseGenerator) -> int:
    """Annual deal value: the AI estimate when service mapping has one, else a tiered range."""
    value = float(DEFAULT_ESTIMATED_VALUE)
    context = (lead.get("service_mapping") or {}).get("context") or {}
    annual = context.get("estimated_annual_value") if isinstance(context, dict) else None

    if annual:
        if isinstance(annual, str):
            match = _MONEY_RE.search(annual)
            if match and match.group(1).replace(",", ""):
                value = float(match.group(1).replace(",", ""))
    else:
        tier = _property_tier(_property_type(lead))
        if tier == "high":
            base, spread = VALUE_RANGES["high"]
        elif tier == "medium":
            base, spread = VALUE_RANGES["medium"]
        elif lead.get("enrichment_status") == "complete":
            base, spread = VALUE_RANGES["complete"]
        elif lead.get("apollo_id"):
            base, spread = VALUE_RANGES["apollo"]
        else:
            base, spread = VALUE_RANGES["default"]
        value = base + noise.uniform(0, spread)

        employees = _employee_count(lead)
        if employees > 500:
            value *= 1.5
        elif employees > 100:
            value *= 1.2

    return round_half_up(value / VALUE_ROUNDING) * VALUE_ROUNDING


# =============================================================================
# PUBLIC API
# =============================================================================

def score_lead(
    lead: Dict[str, Any],
    lead_activities: Optional[List[Dict[str, Any]]] = None,
    noise: Optional[NoiseGenerator] = None,
    now: Optional[datetime] = None,
) -> ScoredLead:
    """Score a single lead against its own activities."""
    noise = noise or NoNoise()
    now = now or datetime.now(timezone.utc)
    lead_activities = lead_activities or []

    fit = score_company_fit(lead, noise)
    engagement = score_engagement(lead, lead_activities, noise, now)
    timing = score_timing(lead, noise, now)

    composite = round_half_up(
        fit.score * WEIGHT_FIT + engagement.score * WEIGHT_ENGAGEMENT + timing.score * WEIGHT_TIMING
    )
    return ScoredLead(
        lead=lead,
        opportunity_score=composite,
        company_fit_score=round_half_up(fit.score),
        engagement_score=round_half_up(engagement.score),
        timing_score=round_half_up(timing.score),
        win_probability=win_probability(composite, lead.get("status"), noise),
        estimated_value=estimate_value(lead, noise),
        score_breakdown={
            "company_fit": {
                "score": round_half_up(fit.score),
                "reasoning": ", ".join(fit.reasons) or "Limited company information",
            },
            "engagement": {
                "score": round_half_up(engagement.score),
                "reasoning": ", ".join(engagement.reasons) or "Minimal engagement data",
            },
            "timing": {
                "score": round_half_up(timing.score),
                "reasoning": ", ".join(timing.reasons) or "Standard timing",
            },
        },
    )


def _group_activities(activities: Any) -> Dict[Any, List[Dict[str, Any]]]:
    grouped: Dict[Any, List[Dict[str, Any]]] = {}
    if not isinstance(activities, list):
        return grouped
    for a in activities:
        if isinstance(a, dict):
            grouped.setdefault(a.get("lead_id"), []).append(a)
    return grouped


def score_leads(
    leads: Any,
    activities: Any = None,
    noise: Optional[NoiseGenerator] = None,
    now: Optional[datetime] = None,
    cache: Optional["ScoreCache"] = None,
) -> List[ScoredLead]:
    """
    Score a batch of leads. Non-list input yields [].

    Activities are matched to leads by lead_id.
    """
    if not isinstance(leads, list):
        return []
    noise = noise or NoNoise()
    now = now or datetime.now(timezone.utc)
    grouped = _group_activities(activities)

    results = []
    for lead in leads:
        if not isinstance(lead, dict):
            continue
        lead_acts = grouped.get(lead.get("id"), [])
        if cache is not None:
            results.append(cache.get_or_score(lead, lead_acts, noise, now))
        else:
            results.append(score_lead(lead, lead_acts, noise, now))
    logger.debug("Scored %s leads", len(results))
    return results


def get_scoring_summary(scored: List[ScoredLead]) -> Dict[str, Any]:
    """Aggregate statistics for a scored batch."""
    if not scored:
        return {"total_leads": 0, "avg_score": 0, "min_score": 0, "max_score": 0,
                "pipeline_value": 0, "weighted_pipeline_value": 0, "hot_opportunities": 0}
    scores = [s.opportunity_score for s in scored]
    return {
        "total_leads": len(scored),
        "avg_score": round(sum(scores) / len(scores), 1),
        "min_score": min(scores),
        "max_score": max(scores),
        "pipeline_value": sum(s.estimated_value for s in scored),
        "weighted_pipeline_value": round(sum(s.estimated_value * s.win_probability / 100.0 for s in scored)),
        "hot_opportunities": sum(1 for s in scored if s.opportunity_score >= 70),
    }


# =============================================================================
# MEMOIZATION
# =============================================================================

def lead_fingerprint(lead: Dict[str, Any], lead_activities: List[Dict[str, Any]], now: datetime) -> str:
    """Hash of the lead document, its activity ids/timestamps, and the current hour."""
    acts = sorted((str(a.get("id")), str(a.get("created_at"))) for a in lead_activities)
    payload = json.dumps(
        {"lead": lead, "activities": acts, "hour": now.strftime("%Y-%m-%dT%H")},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ScoreCache:
    """Per-process memo of scored leads. Only reuses results under NoNoise."""

    def __init__(self, max_entries: int = 5000):
        self.max_entries = max_entries
        self._entries: Dict[Tuple[Any, str], ScoredLead] = {}
        self.hits = 0
        self.misses = 0

    def get_or_score(
        self, lead: Dict[str, Any], lead_activities: List[Dict[str, Any]], noise: NoiseGenerator, now: datetime
    ) -> ScoredLead:
        if not isinstance(noise, NoNoise):
            return score_lead(lead, lead_activities, noise, now)
        key = (lead.get("id"), lead_fingerprint(lead, lead_activities, now))
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        result = score_lead(lead, lead_activities, noise, now)
        if len(self._entries) >= self.max_entries:
            self._entries.clear()
        self._entries[key] = result
        return result
