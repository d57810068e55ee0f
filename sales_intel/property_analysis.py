"""
Stage 2: Property Analysis.

Requires geo enrichment. Classifies the property from its Places types,
runs the research aggregator and (when a Perplexity key exists) the social
presence analyzer, then sends the satellite image to an OpenAI vision model
for a property-first maintenance assessment.

Research and social intelligence are best-effort; a missing key, a failed
image download, or an unparseable vision reply fails the stage.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .cancel import CancelToken, check
from .climate import determine_region, determine_season
from .config import Settings
from .errors import CancelledError, ConfigMissingError, IntelError, StageBlockedError
from .llm import chat_json
from .places import PlacesClient
from .research import perform_real_research
from .social import analyze_social_presence

logger = logging.getLogger(__name__)

PUBLIC_DATA_FIELDS = ["name", "rating", "user_ratings_total", "types", "formatted_address",
                      "business_status", "opening_hours"]

# (property_type, any of these place types)
PLACE_TYPE_RULES = [
    ("golf_course", ("golf_course",)),
    ("shopping_center", ("shopping_mall", "shopping_center")),
    ("park", ("park",)),
    ("educational", ("school", "university")),
    ("healthcare", ("hospital",)),
    ("office", ("office_building", "premise")),
    ("hospitality", ("lodging", "hotel")),
    ("residential_multi", ("apartment", "housing")),
]


def classify_place_types(types: List[str]) -> str:
    for property_type, markers in PLACE_TYPE_RULES:
        if any(m in types for m in markers):
            return property_type
    return "commercial_general"


def lookup_public_data(company_name: str, address: str, places: PlacesClient) -> Dict[str, Any]:
    """Places text search for the business; returns property_type, public_data and place_id."""
    out: Dict[str, Any] = {"property_type": "unknown", "public_data": None, "place_id": None}
    try:
        hits = places.text_search(f"{company_name} {address}".strip())
        if not hits:
            return out
        place_id = hits[0].get("place_id")
        out["place_id"] = place_id
        details = places.place_details(place_id, PUBLIC_DATA_FIELDS) if place_id else {}
    except IntelError as e:
        logger.warning("Property type lookup failed: %s", e)
        return out
    if details:
        types = details.get("types") or []
        out["property_type"] = classify_place_types(types)
        out["public_data"] = {
            "name": details.get("name"),
            "rating": details.get("rating"),
            "reviews_count": details.get("user_ratings_total") or 0,
            "types": types,
            "business_status": details.get("business_status"),
            "formatted_address": details.get("formatted_address"),
        }
    return out


def _research_block(research: Optional[Dict[str, Any]]) -> str:
    if not research:
        return ""
    web = research.get("web_search_results") or []
    reviews = (research.get("enhanced_places") or {}).get("recent_reviews") or []
    if not web and not reviews:
        return ""
    lines = ["", "=== REAL RESEARCH DATA (USE THIS FOR PERSONALIZED CONVERSATION STARTERS) ==="]
    if web:
        lines.append("RECENT NEWS & EVENTS (last 12 months):")
        for i, r in enumerate(web, start=1):
            lines.append(f'{i}. "{r.get("title")}"\n   {r.get("snippet")}\n   Source: {r.get("source")}')
    if reviews:
        themes = research.get("review_themes") or {}
        lines.append(f"CUSTOMER REVIEWS ANALYSIS ({len(reviews)} recent reviews):")
        lines.append(f"- Outdoor mentions: {len(themes.get('outdoor_mentions') or [])}")
        lines.append(f"- Appearance mentions: {len(themes.get('appearance_mentions') or [])}")
        lines.append(f"- Recent praise: {len(themes.get('recent_praise') or [])}")
        lines.append("Sample customer quotes:")
        for i, r in enumerate(reviews[:3], start=1):
            lines.append(f'{i}. "{(r.get("text") or "")[:150]}..." ({r.get("rating")} stars)')
    lines.append("Reference specific events, dates and review themes above in conversation starters. "
                 "Do not use generic language like 'probably' or 'likely values'.")
    return "\n".join(lines)


def build_vision_prompt(
    company_name: str,
    public_data: Optional[Dict[str, Any]],
    city: str,
    state: str,
    region: str,
    season: str,
    research: Optional[Dict[str, Any]] = None,
) -> str:
    context = ""
    if public_data:
        context = f"""BUSINESS CONTEXT:
- Business Name: {public_data.get('name')}
- Business Type: {', '.join(public_data.get('types') or [])}
- Address: {public_data.get('formatted_address')}
- City/State: {city}, {state}
- Region: {region}
- Current Season: {season}
"""
    prompt = f"""{context}
You are an AI property analyst for landscaping and irrigation sales, looking at a satellite image of {company_name or 'this property'}.
Base your analysis on what is VISUALLY OBSERVABLE, not on generic business descriptions.
Tie every recommendation to a visible feature, explain every estimate from the visible layout,
and use the {region} climate and {season} season in your reasoning.

Return JSON:
{{
  "property_quality": "excellent | good | average | poor (overall landscape upkeep you can see)",
  "property_condition": "one sentence on visible condition",
  "lot_size_acres": "qualitative estimate, e.g. '1-3 acres based on visible boundaries'",
  "observed_features": ["4-6 specific features with location"],
  "property_profile": {{
    "setting": "suburban | urban | rural",
    "turf_coverage": "low | medium | high",
    "tree_density": "low | medium | high",
    "hardscape_ratio": "low | medium | high",
    "estimated_property_scale": "small | medium | large"
  }},
  "maintenance_intelligence": {{
    "mowing_intensity": "low | medium | high",
    "mowing_intensity_reasoning": "why, from the visible turf layout",
    "irrigation_system_scale": "small | medium | large",
    "likely_irrigation_type": "spray | rotor | drip | mixed",
    "common_risk_areas": ["risks tied to visible features"]
  }},
  "technical_estimates": {{
    "approx_turf_area_sqft": "range with reasoning",
    "estimated_irrigation_zones": "range with reasoning",
    "estimated_mowing_hours_per_week": "range with reasoning"
  }},
  "property_risks": [{{"feature": "", "risk": "", "impact": ""}}],
  "property_opportunities": [{{"feature": "", "opportunity": "", "value": ""}}],
  "service_recommendations": [{{"service": "", "feature": "", "problem": "", "reasoning": ""}}],
  "conversation_starters": ["3 starters referencing visible features"],
  "region_season_context": "why {region} + {season} matters for this property"
}}"""
    return prompt + _research_block(research)


def run_property_analysis(
    lead: Dict[str, Any],
    settings: Settings,
    places: Optional[PlacesClient] = None,
    llm_client: Optional[Any] = None,
    http_session: Optional[Any] = None,
    cancel: Optional[CancelToken] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the property_analysis payload for a geo-enriched lead.

    Raises:
        StageBlockedError: geo enrichment (with an image) missing
        ConfigMissingError: Maps or OpenAI key missing
        UpstreamError / ParseFailureError: image or vision call failed
    """
    geo = lead.get("geo_enrichment") or {}
    if not geo or not geo.get("image_url"):
        raise StageBlockedError("Geo enrichment required. Run Stage 1 first.", detail={"stage": "property"})
    if not settings.google_maps_api_key:
        raise ConfigMissingError("Google Maps API key not configured in settings")
    if not settings.ai_api_key:
        raise ConfigMissingError("OpenAI API key not configured in settings")

    places = places or PlacesClient(settings.google_maps_api_key, session=http_session)
    now = now or datetime.now(timezone.utc)
    company_name = lead.get("company_name") or ""
    address = geo.get("full_address") or ""
    city = geo.get("city") or ""
    state = geo.get("state") or ""
    region = geo.get("region")
    if not region or region == "Unknown":
        region = determine_region(state)
    season = determine_season(now.month - 1, region)

    lookup = lookup_public_data(company_name, address, places)

    research = None
    if company_name:
        check(cancel, "property analysis")
        research = perform_real_research(
            company_name,
            city,
            place_id=lookup["place_id"],
            api_key=settings.google_maps_api_key,
            search_engine_id=settings.google_custom_search_id,
            places=places,
            session=http_session,
        )

    social = None
    if company_name and city and state and settings.perplexity_api_key:
        check(cancel, "property analysis")
        try:
            social = analyze_social_presence(
                company_name, city, state,
                settings.perplexity_api_key, settings.ai_api_key,
                session=http_session, llm_client=llm_client, cancel=cancel,
            )
        except CancelledError:
            raise
        except IntelError as e:
            logger.warning("Social intelligence skipped: %s", e)
    else:
        logger.info("Social intelligence skipped: Perplexity key or location missing")

    check(cancel, "property analysis")
    image_b64 = places.fetch_image_base64(geo["image_url"])
    prompt = build_vision_prompt(company_name, lookup["public_data"], city, state, region, season, research)
    vision = chat_json(
        [
            {"role": "system", "content": "You are an AI property analyst. Analyze satellite imagery of real "
                                          "properties for landscaping sales. Always respond with valid JSON."},
            {"role": "user", "content": [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{image_b64}", "detail": "high"}},
            ]},
        ],
        api_key=settings.ai_api_key,
        model=settings.vision_model,
        temperature=0.3,
        max_tokens=2000,
        client=llm_client,
    )

    analyzed_at = datetime.now(timezone.utc).isoformat()
    logger.info("Property analysis complete for %s: %s", company_name or lead.get("id"), lookup["property_type"])
    return {
        "property_type": lookup["property_type"],
        "property_quality": vision.get("property_quality"),
        "property_condition": vision.get("property_condition"),
        "lot_size_acres": vision.get("lot_size_acres"),
        "public_data": lookup["public_data"],
        "vision_analysis": vision,
        "real_research": research,
        "social_intelligence": social,
        "analysis_metadata": {"mode": "single-image", "region": region, "season": season,
                              "analyzed_at": analyzed_at},
        "analyzed_at": analyzed_at,
    }
