"""
Stage 1: Geo Enrichment.

Geocodes the lead's company address, derives city / state / region, builds
a satellite static-map URL, and gathers best-effort business intelligence
(place details, reviews, photos, hours) with optional AI conversation
insights. The persisted image URL never carries the API key.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .climate import region_for_state
from .config import Settings
from .errors import IntelError, InvalidInputError, UpstreamError
from .llm import chat_json
from .places import PlacesClient, static_map_url

logger = logging.getLogger(__name__)

DETAIL_FIELDS = [
    "name", "rating", "user_ratings_total", "reviews", "types", "website",
    "formatted_phone_number", "editorial_summary", "photos", "opening_hours",
]
MAX_REVIEWS = 10
MAX_PHOTOS = 5


def build_address(lead: Dict[str, Any]) -> str:
    parts = [
        lead.get("company_street"),
        lead.get("company_city"),
        lead.get("company_state"),
        lead.get("company_postal_code"),
        lead.get("company_country"),
    ]
    return ", ".join(str(p) for p in parts if p)


def _parse_components(result: Dict[str, Any], lead: Dict[str, Any]) -> Dict[str, str]:
    city = lead.get("company_city") or ""
    state = lead.get("company_state") or ""
    country = lead.get("company_country") or ""
    for comp in result.get("address_components") or []:
        types = comp.get("types") or []
        if "locality" in types:
            city = comp.get("long_name") or city
        if "administrative_area_level_1" in types:
            state = comp.get("short_name") or state
        if "country" in types:
            country = comp.get("long_name") or country
    return {"city": city, "state": state, "country": country}


def _conversation_insights(bi: Dict[str, Any], city: str, state: str, settings: Settings,
                           llm_client: Optional[Any]) -> Optional[Dict[str, Any]]:
    reviews = "\n\n".join(
        f"{i + 1}. [{r.get('rating')}*] {(r.get('text') or '')[:300]}..."
        for i, r in enumerate(bi.get("reviews") or [])
    )
    prompt = f"""You are a sales intelligence analyst. Analyze this business to help sales reps build authentic, personal connections.

Business: {bi.get('business_name')}
Location: {city}, {state}
Category: {', '.join(bi.get('categories') or [])}
Rating: {bi.get('rating')} ({bi.get('total_reviews')} reviews)
Description: {bi.get('description') or 'N/A'}
Website: {bi.get('website') or 'N/A'}

Customer Reviews (sample):
{reviews}

Extract actionable sales intelligence in JSON format:

{{
  "unique_features": ["Specific amenities, signature offerings, or standout characteristics mentioned"],
  "customer_love": ["Direct quotes or testimonials about what customers appreciate most"],
  "services_offered": ["List of services, offerings, or specialties identified"],
  "values_culture": ["Signals about company personality: family-owned, sustainability, excellence, community"],
  "conversation_starters": ["5 authentic, personalized opening lines a sales rep can use"],
  "pain_points": ["Problems or frustrations mentioned in reviews - sales opportunities"],
  "opportunity_insights": ["Why this business is a good fit for lawn/irrigation services"],
  "decision_maker_context": ["What the decision maker likely cares about based on business type"]
}}

Be specific and use real details from the data. Make conversation starters natural and personalized."""
    try:
        return chat_json(
            [
                {"role": "system", "content": "You are a sales intelligence analyst. Extract structured, actionable "
                                              "insights from business data. Always respond with valid JSON."},
                {"role": "user", "content": prompt},
            ],
            api_key=settings.ai_api_key,
            model=settings.vision_model,
            temperature=0.3,
            client=llm_client,
        )
    except IntelError as e:
        logger.warning("Conversation insights skipped: %s", e)
        return None


def gather_business_intelligence(
    full_address: str,
    city: str,
    state: str,
    places: PlacesClient,
    settings: Settings,
    llm_client: Optional[Any] = None,
) -> Optional[Dict[str, Any]]:
    """Find the place at the address and summarize it. None when nothing usable is found."""
    try:
        candidates = places.find_place(full_address, fields="place_id,name,types")
        if not candidates:
            logger.info("Place not found for %s", full_address)
            return None
        place_id = candidates[0].get("place_id")
        place = places.place_details(place_id, DETAIL_FIELDS)
    except IntelError as e:
        logger.warning("Business intelligence lookup failed: %s", e)
        return None
    if not place:
        return None

    bi: Dict[str, Any] = {
        "place_id": place_id,
        "business_name": place.get("name"),
        "rating": place.get("rating"),
        "total_reviews": place.get("user_ratings_total"),
        "categories": place.get("types") or [],
        "website": place.get("website"),
        "phone": place.get("formatted_phone_number"),
        "description": (place.get("editorial_summary") or {}).get("overview"),
        "reviews": [
            {
                "author": r.get("author_name"),
                "rating": r.get("rating"),
                "text": r.get("text"),
                "time": r.get("time"),
                "relative_time": r.get("relative_time_description"),
            }
            for r in (place.get("reviews") or [])[:MAX_REVIEWS]
        ],
        "photos": [
            {"reference": p.get("photo_reference"), "width": p.get("width"), "height": p.get("height")}
            for p in (place.get("photos") or [])[:MAX_PHOTOS]
        ],
        "opening_hours": (place.get("opening_hours") or {}).get("weekday_text") or [],
    }
    logger.info("Business intelligence: %s reviews, %s detailed", bi["total_reviews"], len(bi["reviews"]))

    if settings.ai_api_key and bi["reviews"]:
        insights = _conversation_insights(bi, city, state, settings, llm_client)
        if insights:
            bi["ai_insights"] = insights
    return bi


def run_geo_enrichment(
    lead: Dict[str, Any],
    settings: Settings,
    places: Optional[PlacesClient] = None,
    llm_client: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Build the geo_enrichment payload for a lead.

    Raises:
        ConfigMissingError: no Google Maps key
        InvalidInputError: no address fields on the lead
        UpstreamError: geocoding failed or found nothing
    """
    places = places or PlacesClient(settings.google_maps_api_key)
    full_address = build_address(lead)
    if not full_address:
        raise InvalidInputError("No address data available for this lead")

    logger.info("Geocoding address: %s", full_address)
    result = places.geocode(full_address)
    if not result:
        raise UpstreamError(f"Geocoding found no results for {full_address}")
    location = (result.get("geometry") or {}).get("location") or {}
    lat, lng = location.get("lat"), location.get("lng")
    if lat is None or lng is None:
        raise UpstreamError("Geocoding result had no coordinates")

    parts = _parse_components(result, lead)
    region = region_for_state(parts["state"], parts["country"] or None)

    payload = {
        "image_url": static_map_url(lat, lng),
        "lat": lat,
        "lng": lng,
        "city": parts["city"],
        "state": parts["state"],
        "region": region,
        "country": parts["country"],
        "full_address": result.get("formatted_address") or full_address,
        "business_intelligence": gather_business_intelligence(
            full_address, parts["city"], parts["state"], places, settings, llm_client=llm_client
        ),
        "enriched_at": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("Geo enrichment complete: %s, %s (%s)", parts["city"], parts["state"], region)
    return payload
