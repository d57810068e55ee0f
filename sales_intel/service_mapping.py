"""
Stage 3: Service Mapping.

Requires geo enrichment and property analysis. Finds local competitors,
works out season and regional climate, and asks OpenAI for a service plan:
recommended services, competition assessment, irrigation intelligence and
a sales playbook. Competitors the model leaves out of
competition_assessment.local_providers are appended from the directory
records so every real competitor is represented.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .climate import climate_info, determine_region, determine_season, seasonal_opportunity
from .competitors import search_competitors
from .config import Settings
from .errors import ConfigMissingError, StageBlockedError
from .llm import chat_json
from .places import PlacesClient

logger = logging.getLogger(__name__)

SERVICE_MODEL = "gpt-4o"
MAX_TOKENS = 8000

SYSTEM_PROMPT = (
    "You are a sales expert for landscape and property maintenance services. You analyze property data "
    "and create targeted service recommendations with compelling sales angles. CRITICAL: Always respond "
    "with VALID, PARSEABLE JSON only. Never include unescaped quotes in text fields. When including review "
    "quotes, paraphrase them or use single quotes internally. Keep responses concise to avoid token limits."
)


def _business_context(profile: Optional[Dict[str, Any]]) -> str:
    if not profile:
        return ""
    return f"""
BUSINESS PROFILE:
- Company: {profile.get('company_name') or 'Landscape Services'}
- Services Offered: {profile.get('services_offered') or 'Lawn maintenance, irrigation, landscaping'}
- Specialties: {profile.get('specialties') or 'Commercial and residential properties'}
- Target Market: {profile.get('target_market') or 'Commercial properties'}
"""


def _competitor_context(competitors: List[Dict[str, Any]]) -> str:
    if not competitors:
        return "\nLOCAL COMPETITORS: none found in the directory; describe the likely market landscape.\n"
    blocks = []
    for i, c in enumerate(competitors, start=1):
        reviews = "; ".join(f"{r.get('rating')}* {r.get('text')}" for r in c.get("reviews") or [])
        blocks.append(
            f"{i}. {c.get('title')} | rating {c.get('rating')} ({c.get('user_ratings_total')} reviews) | "
            f"{c.get('address')} | website {c.get('website') or 'none'} | reviews: {reviews or 'none'}"
        )
    return "\nLOCAL COMPETITORS (real, from Google Places):\n" + "\n".join(blocks) + "\n"


def build_service_mapping_prompt(
    lead: Dict[str, Any],
    competitors: List[Dict[str, Any]],
    season: str,
    region: str,
    month: int,
    business_profile: Optional[Dict[str, Any]] = None,
) -> str:
    geo = lead.get("geo_enrichment") or {}
    prop = lead.get("property_analysis") or {}
    state = geo.get("state") or "Unknown"
    climate = climate_info(state)
    vision = prop.get("vision_analysis") or {}
    vision_text = json.dumps(vision, default=str)[:6000]

    return f"""Create a landscape and irrigation service plan for {lead.get('company_name') or 'this property'}.

PROPERTY:
- Address: {geo.get('full_address') or 'Unknown'}
- City/State: {geo.get('city') or 'Unknown'}, {state}
- Property type: {prop.get('property_type') or 'unknown'}
- Visible quality: {prop.get('property_quality') or 'unknown'}
- Vision analysis: {vision_text}
{_business_context(business_profile)}
REGION & SEASON:
- Region: {region}, current season: {season}
- Climate zone: {climate['zone']}; growing season {climate['growing_season']}; about {climate['mowing_weeks']} mowing weeks
- Snow potential: {climate['snow_potential']} ({climate['snow_weeks']} snow weeks)
- Best bundle timing: {climate['bundle_timing']}
- Seasonal opportunity now: {seasonal_opportunity(month, climate)}
{_competitor_context(competitors)}
Return JSON:
{{
  "executive_summary": "3-4 sentence summary for the sales rep",
  "service_fit_analysis": "paragraph on how our services fit this property",
  "context": {{
    "current_season": "{season}", "region": "{region}", "climate_zone": "{climate['zone']}",
    "growing_season": "", "mowing_weeks": {climate['mowing_weeks']}, "snow_potential": "",
    "property_age_years": null, "opportunity_score": "High | Medium | Low",
    "estimated_annual_value": "$X - $Y"
  }},
  "competition_assessment": {{
    "local_providers": [{{"name": "", "rating": null, "review_count": null, "strengths": [], "weaknesses": [], "website": ""}}],
    "our_differentiation": "", "market_landscape": "", "strategic_recommendations": []
  }},
  "irrigation_intelligence": {{"system_scale": "", "estimated_zones": "", "water_savings_opportunity": "", "recommendations": []}},
  "recommended_services": [{{"name": "", "category": "CORE | SEASONAL | REPAIR | UPGRADE", "priority": 1,
                             "rationale": "", "roi_projection": "", "urgency": "", "estimated_cost": ""}}],
  "cost_time_analysis": {{"annual_maintenance_hours": "", "cost_breakdown": [], "payback_period": ""}},
  "seasonal_addons": [], "future_services": [],
  "actionable_insights": {{
    "opening_strategy": "", "pain_point_mapping": [], "competitive_positioning": "", "value_narrative": "",
    "decision_maker_profile": "", "conversation_roadmap": [], "closing_tactics": [], "risk_factors": [],
    "timing_recommendation": "", "budget_planning": "", "priority_opportunities": [],
    "objection_handling": [], "conversation_starters": []
  }},
  "sales_angle": ""
}}
Include every local competitor listed above in competition_assessment.local_providers."""


def fold_competitors(mapping: Dict[str, Any], competitors: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Append directory competitors missing from competition_assessment.local_providers."""
    assessment = mapping.get("competition_assessment")
    if not isinstance(assessment, dict):
        assessment = {}
        mapping["competition_assessment"] = assessment
    providers = assessment.get("local_providers")
    if not isinstance(providers, list):
        providers = []
    named = {str(p.get("name") or "").strip().lower() for p in providers if isinstance(p, dict)}
    for c in competitors:
        key = (c.get("title") or "").strip().lower()
        if not key or key in named:
            continue
        providers.append({
            "name": c.get("title"),
            "rating": c.get("rating"),
            "review_count": c.get("user_ratings_total"),
            "address": c.get("address"),
            "website": c.get("website"),
            "phone": c.get("phone"),
            "google_maps_link": c.get("google_maps_link"),
            "recent_reviews": c.get("reviews") or [],
            "source": "google_places",
        })
        named.add(key)
    assessment["local_providers"] = providers
    return mapping


def run_service_mapping(
    lead: Dict[str, Any],
    settings: Settings,
    places: Optional[PlacesClient] = None,
    llm_client: Optional[Any] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the service_mapping payload.

    Raises:
        StageBlockedError: geo or property payload missing
        ConfigMissingError: no OpenAI key
        UpstreamError / ParseFailureError: the model call failed
    """
    geo = lead.get("geo_enrichment")
    if not geo:
        raise StageBlockedError("Geo enrichment required. Run Stage 1 first.", detail={"stage": "service"})
    if not lead.get("property_analysis"):
        raise StageBlockedError("Property analysis required. Run Stage 2 first.", detail={"stage": "service"})
    if not settings.ai_api_key:
        raise ConfigMissingError("OpenAI API key not configured in settings")

    now = now or datetime.now(timezone.utc)
    city = geo.get("city") or ""
    state = geo.get("state") or ""

    competitors: List[Dict[str, Any]] = []
    if (places or settings.google_maps_api_key) and city and state:
        competitors = search_competitors(
            city, state, lat=geo.get("lat"), lng=geo.get("lng"),
            places=places, api_key=settings.google_maps_api_key,
        )
    else:
        logger.info("Competitor search skipped: Maps key or location missing")

    region = geo.get("region")
    if not region or region == "Unknown":
        region = determine_region(state)
    season = determine_season(now.month - 1, region)

    prompt = build_service_mapping_prompt(lead, competitors, season, region, now.month, settings.business_profile)
    mapping = chat_json(
        [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": prompt}],
        api_key=settings.ai_api_key,
        model=SERVICE_MODEL,
        temperature=0.4,
        max_tokens=MAX_TOKENS,
        client=llm_client,
        repair=True,
    )
    mapping = fold_competitors(mapping, competitors)
    mapping["competitor_search_count"] = len(competitors)
    mapping["generated_at"] = now.isoformat()
    mapping["analyzed_at"] = datetime.now(timezone.utc).isoformat()
    logger.info("Service mapping complete for %s: %s services, %s competitors",
                lead.get("company_name") or lead.get("id"),
                len(mapping.get("recommended_services") or []), len(competitors))
    return mapping
