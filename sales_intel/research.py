"""
Web and review research for a prospect.

Combines three Google Custom Search queries (news/events, recognition,
social) with a Place Details pull and a keyword pass over reviews for
landscaping-relevant themes. Every sub-fetch is best-effort: the result always
has the same shape and a failed piece is an empty section.
"""

import re
import time
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .errors import IntelError
from .places import PlacesClient

logger = logging.getLogger(__name__)

CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
REQUEST_TIMEOUT = 20
RESULTS_PER_QUERY = 5
MAX_REVIEWS = 15
RECENT_WINDOW_SECONDS = 90 * 24 * 60 * 60

PLACE_FIELDS = ["name", "rating", "reviews", "website", "formatted_phone_number", "url", "editorial_summary"]

OUTDOOR_KEYWORDS = ("patio", "outdoor", "garden", "outside", "terrace", "deck")
APPEARANCE_KEYWORDS = (
    "beautiful", "clean", "well-maintained", "gorgeous", "landscap",
    "grounds", "grass", "flowers", "curb appeal",
)


def _search_queries(company_name: str, city: str) -> List[Dict[str, str]]:
    return [
        {
            "query_type": "news_events",
            "q": f'"{company_name}" {city} news OR event OR fundraiser OR charity OR community OR sponsorship',
        },
        {
            "query_type": "recognition",
            "q": f'"{company_name}" {city} award OR recognition OR celebration OR anniversary OR milestone',
        },
        {
            "query_type": "social_media",
            "q": f'"{company_name}" {city} Facebook OR Instagram OR "social media"',
        },
    ]


def _log_search_error(message: str) -> None:
    logger.warning("Custom Search API error: %s", message)
    lowered = message.lower()
    if "blocked" in lowered:
        logger.warning("  fix: the API key has restrictions; allow the Custom Search API for this key "
                       "at https://console.cloud.google.com/apis/credentials")
    elif "has not been used" in lowered or "disabled" in lowered:
        url = re.search(r"https://\S+", message)
        logger.warning("  fix: enable the Custom Search API at %s", url.group(0) if url else "Google Cloud Console")
    elif "quota" in lowered:
        logger.warning("  fix: Custom Search quota exceeded; wait or raise the quota")
    elif "api key not valid" in lowered:
        logger.warning("  fix: the Maps key does not work for Custom Search; enable the Custom Search API for it")


def search_web(
    company_name: str,
    city: str,
    api_key: Optional[str],
    search_engine_id: Optional[str],
    session: Optional[requests.Session] = None,
) -> List[Dict[str, Any]]:
    """Run the three research queries; stops at the first API-level error."""
    if not search_engine_id:
        logger.info("No Custom Search Engine ID configured; web research skipped. "
                    "Create one at https://programmablesearchengine.google.com/ (search the entire web) "
                    "and save it in Settings as google_custom_search_id")
        return []
    if not api_key:
        logger.info("No Google API key configured; web research skipped")
        return []

    session = session or requests.Session()
    results: List[Dict[str, Any]] = []
    for query in _search_queries(company_name, city):
        params = {
            "key": api_key,
            "cx": search_engine_id,
            "q": query["q"],
            "num": RESULTS_PER_QUERY,
            "dateRestrict": "y1",
        }
        try:
            response = session.get(CUSTOM_SEARCH_URL, params=params, timeout=REQUEST_TIMEOUT)
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("Search query failed: %s", e)
            continue
        if data.get("error"):
            _log_search_error(str((data["error"] or {}).get("message") or data["error"]))
            break
        for item in data.get("items") or []:
            results.append({
                "title": item.get("title"),
                "snippet": item.get("snippet"),
                "link": item.get("link"),
                "source": item.get("displayLink"),
                "query_type": query["query_type"],
            })
    return results


def analyze_review_themes(reviews: List[Dict[str, Any]], now: Optional[float] = None) -> Dict[str, List[Dict]]:
    """Bucket reviews into outdoor / appearance mentions and recent praise / concerns."""
    now = time.time() if now is None else now
    themes: Dict[str, List[Dict]] = {
        "outdoor_mentions": [],
        "appearance_mentions": [],
        "recent_praise": [],
        "recent_concerns": [],
    }
    for review in reviews:
        raw = review.get("text") or ""
        text = raw.lower()
        rating = review.get("rating")
        ts = review.get("time")
        is_recent = bool(ts) and (now - ts) < RECENT_WINDOW_SECONDS

        mention = {
            "text": raw[:250],
            "rating": rating,
            "author": review.get("author_name"),
            "recent": is_recent,
            "time": ts,
        }
        if any(k in text for k in OUTDOOR_KEYWORDS):
            themes["outdoor_mentions"].append(dict(mention))
        if any(k in text for k in APPEARANCE_KEYWORDS):
            themes["appearance_mentions"].append(dict(mention))
        if rating is not None and is_recent:
            if rating >= 4:
                themes["recent_praise"].append({"text": raw[:200], "rating": rating})
            elif rating <= 3:
                themes["recent_concerns"].append({"text": raw[:200], "rating": rating})
    return themes


def perform_real_research(
    company_name: str,
    city: str,
    place_id: Optional[str] = None,
    api_key: Optional[str] = None,
    search_engine_id: Optional[str] = None,
    places: Optional[PlacesClient] = None,
    session: Optional[requests.Session] = None,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Gather web mentions, place details and review themes for a company.

    Never raises; a top-level failure is reported in the "error" key with the
    sections gathered so far.
    """
    logger.info("Starting research for %s", company_name)
    result: Dict[str, Any] = {
        "web_search_results": [],
        "enhanced_places": {},
        "review_themes": analyze_review_themes([]),
        "research_timestamp": datetime.now(timezone.utc).isoformat(),
        "has_web_results": False,
        "has_review_insights": False,
    }
    try:
        result["web_search_results"] = search_web(company_name, city, api_key, search_engine_id, session=session)

        if place_id:
            try:
                places = places or PlacesClient(api_key, session=session)
                details = places.place_details(place_id, PLACE_FIELDS)
            except IntelError as e:
                logger.warning("Place details for research failed: %s", e)
                details = {}
            if details:
                result["enhanced_places"] = {
                    "website": details.get("website"),
                    "phone": details.get("formatted_phone_number"),
                    "google_maps_url": details.get("url"),
                    "editorial_summary": (details.get("editorial_summary") or {}).get("overview"),
                    "recent_reviews": (details.get("reviews") or [])[:MAX_REVIEWS],
                }
                logger.info("Found %s reviews", len(result["enhanced_places"]["recent_reviews"]))

        reviews = (result["enhanced_places"] or {}).get("recent_reviews") or []
        themes = analyze_review_themes(reviews, now=now)
        result["review_themes"] = themes
        result["has_web_results"] = len(result["web_search_results"]) > 0
        result["has_review_insights"] = any(themes[k] for k in ("outdoor_mentions", "appearance_mentions"))
    except Exception as e:
        logger.exception("Research failed for %s", company_name)
        result["error"] = str(e)

    logger.info("Research complete for %s: %s web results, review insights=%s",
                company_name, len(result["web_search_results"]), result["has_review_insights"])
    return result
