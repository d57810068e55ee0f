"""
Local competitor discovery for service mapping.

One Places text search for landscape / lawn / irrigation providers in the
lead's city, then concurrent detail lookups for the top hits. Review text is
sanitized so it can be embedded in an LLM prompt. Best-effort: any directory
error is logged with a remediation hint and yields an empty list.
"""

import re
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

from .errors import IntelError
from .places import PlacesClient, google_maps_link

logger = logging.getLogger(__name__)

SEARCH_RADIUS_KM = 40
MAX_COMPETITORS = 5
MAX_REVIEWS_PER_COMPETITOR = 2
REVIEW_TEXT_CHARS = 200
QUERY_TEMPLATE = "landscape lawn care irrigation services in {city} {state}"

DETAIL_FIELDS = [
    "name",
    "formatted_address",
    "formatted_phone_number",
    "website",
    "rating",
    "user_ratings_total",
    "reviews",
    "business_status",
    "opening_hours",
    "price_level",
    "types",
]

_CHAR_MAP = {
    "‘": "'", "’": "'", "‚": "'", "‛": "'",
    "“": "'", "”": "'", "„": "'", "‟": "'",
    "–": "-", "—": "-",
    "…": "...",
    '"': "'",
}
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_WS_RE = re.compile(r"\s+")


def sanitize_text(text: Optional[str]) -> str:
    """Flatten review text for prompt embedding: no newlines, smart quotes, dashes or control chars."""
    if not text:
        return ""
    out = text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ")
    for src, dst in _CHAR_MAP.items():
        out = out.replace(src, dst)
    out = _CONTROL_RE.sub("", out)
    return _WS_RE.sub(" ", out).strip()


def _to_record(place_id: str, details: Dict[str, Any], query: str) -> Dict[str, Any]:
    reviews = []
    for r in (details.get("reviews") or [])[:MAX_REVIEWS_PER_COMPETITOR]:
        reviews.append({
            "author": sanitize_text(r.get("author_name")) or "Anonymous",
            "rating": r.get("rating"),
            "text": sanitize_text(r.get("text"))[:REVIEW_TEXT_CHARS],
            "time": r.get("relative_time_description"),
            "timestamp": r.get("time"),
        })
    return {
        "title": sanitize_text(details.get("name")),
        "place_id": place_id,
        "address": sanitize_text(details.get("formatted_address")),
        "phone": details.get("formatted_phone_number"),
        "website": details.get("website"),
        "google_maps_link": google_maps_link(place_id),
        "rating": details.get("rating"),
        "user_ratings_total": details.get("user_ratings_total") or 0,
        "business_status": details.get("business_status") or "OPERATIONAL",
        "price_level": details.get("price_level"),
        "types": details.get("types") or [],
        "is_open_now": (details.get("opening_hours") or {}).get("open_now"),
        "reviews": reviews,
        "query": query,
    }


def search_competitors(
    city: Optional[str],
    state: Optional[str],
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    places: Optional[PlacesClient] = None,
    api_key: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Find up to MAX_COMPETITORS local service providers.

    Returns [] on missing parameters or a directory-level failure; a failed
    detail lookup drops only that competitor.
    """
    if not city or not state:
        logger.warning("Competitor search skipped: city and state are required")
        return []
    try:
        places = places or PlacesClient(api_key)
    except IntelError as e:
        logger.warning("Competitor search skipped: %s", e)
        return []

    query = QUERY_TEMPLATE.format(city=city, state=state)
    try:
        hits = places.text_search(query, lat=lat, lng=lng, radius_m=SEARCH_RADIUS_KM * 1000)
    except IntelError as e:
        logger.error("Competitor search failed for %r: %s", query, e)
        for hint in e.detail.get("hints", []):
            logger.error("  fix: %s", hint)
        return []
    except Exception:
        logger.exception("Competitor search crashed for %r", query)
        return []

    candidates = [h for h in hits if h.get("place_id")][:MAX_COMPETITORS]
    if not candidates:
        logger.info("No competitors found for %r", query)
        return []

    def _lookup(hit: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        details = places.place_details(hit["place_id"], DETAIL_FIELDS)
        if not details:
            return None
        return _to_record(hit["place_id"], details, query)

    by_place: Dict[str, Dict[str, Any]] = {}
    with ThreadPoolExecutor(max_workers=len(candidates)) as pool:
        futures = {pool.submit(_lookup, h): h["place_id"] for h in candidates}
        for fut in as_completed(futures):
            place_id = futures[fut]
            try:
                record = fut.result()
            except IntelError as e:
                logger.warning("Competitor details failed for %s: %s", place_id, e)
                continue
            except Exception:
                logger.exception("Competitor details crashed for %s", place_id)
                continue
            if record:
                by_place[place_id] = record

    # keep directory ranking order
    competitors = [by_place[h["place_id"]] for h in candidates if h["place_id"] in by_place]
    logger.info("Found %s competitors in %s, %s", len(competitors), city, state)
    return competitors
